"""
命令行接口 - 统一的启动和管理命令
"""

import asyncio
import json
from typing import Optional

import click
import uvicorn

from jot.config import settings
from jot.core.exceptions import JotException
from jot.core.logging import setup_logging, api_logger


@click.group()
@click.version_option(version=settings.app_version)
def main():
    """Jot - 输入采集与笔记结构化服务"""
    pass


@main.command()
@click.option('--host', default=None, help='服务器地址')
@click.option('--port', default=None, type=int, help='服务器端口')
@click.option('--reload', is_flag=True, help='开启自动重载')
@click.option('--workers', default=1, type=int, help='工作进程数')
@click.option('--log-level', default='info',
              type=click.Choice(['debug', 'info', 'warning', 'error', 'critical']),
              help='日志级别')
def server(host: Optional[str], port: Optional[int], reload: bool,
           workers: int, log_level: str):
    """启动API服务器"""
    host = host or settings.host
    port = port or settings.port

    setup_logging(level=log_level.upper())
    api_logger.info(f"启动服务器: {host}:{port}")

    if reload and workers > 1:
        api_logger.warning("重载模式不支持多进程，将使用单进程")
        workers = 1

    uvicorn.run(
        "jot.main:app",
        host=host,
        port=port,
        reload=reload,
        workers=workers,
        log_level=log_level,
        access_log=True
    )


@main.command("init-db")
def init_db():
    """创建数据库表"""
    from jot.db.init_db import init_database

    setup_logging()
    asyncio.run(init_database())
    click.echo("数据库初始化完成")


@main.command()
@click.argument('note_id')
@click.option('--user', 'user_id', required=True, help='笔记所有者ID')
def reprocess(note_id: str, user_id: str):
    """用笔记已有的音频和文本输入重新生成内容"""
    from jot.services.ai import initialize_ai_services, shutdown_ai_services
    from jot.services.pipeline import PipelineOrchestrator

    setup_logging()

    async def run():
        initialize_ai_services(settings.ai_config)
        try:
            return await PipelineOrchestrator().rebuild_note(user_id, note_id)
        finally:
            await shutdown_ai_services()

    try:
        result = asyncio.run(run())
    except JotException as e:
        raise click.ClickException(f"{e.code}: {e.message}")

    click.echo(json.dumps({
        "noteId": result.note_id,
        "title": result.title,
        "tags": result.tags,
        "transcribed": result.transcribed
    }, ensure_ascii=False))


if __name__ == '__main__':
    main()
