"""
应用配置管理
"""

from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Optional, Dict
from pathlib import Path

# AI配置相关的类将在需要时动态导入以避免循环依赖


class Settings(BaseSettings):
    """应用配置"""

    # 基本配置
    app_name: str = "Jot Notes API"
    app_version: str = "0.1.0"
    debug: bool = Field(default=False, description="调试模式")

    # 服务器配置
    host: str = Field(default="0.0.0.0", description="服务器地址")
    port: int = Field(default=8000, description="服务器端口")

    # 数据库配置
    database_url: str = Field(
        default="sqlite+aiosqlite:///./jot.db",
        description="数据库连接URL"
    )
    database_echo: bool = Field(default=False, description="SQL语句调试输出")
    database_pool_size: int = Field(default=10, description="连接池大小")
    database_max_overflow: int = Field(default=20, description="连接池最大溢出")

    # Redis配置（限流计数器）
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis连接URL")

    # AI服务配置
    llm_provider: str = Field(default="openai", description="结构化服务提供商: openai, anthropic")
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API密钥")
    openai_base_url: Optional[str] = Field(default=None, description="OpenAI API基础URL")
    openai_model: str = Field(default="gpt-4o-mini", description="默认OpenAI模型")
    whisper_model: str = Field(default="whisper-1", description="默认Whisper模型")
    anthropic_api_key: Optional[str] = Field(default=None, description="Anthropic API密钥")
    anthropic_model: str = Field(default="claude-3-haiku-20240307", description="默认Anthropic模型")
    ai_timeout: int = Field(default=60, description="AI调用超时(秒)")

    # 代理配置
    http_proxy: Optional[str] = Field(default=None, description="HTTP代理地址")
    https_proxy: Optional[str] = Field(default=None, description="HTTPS代理地址")
    proxy_auth: Optional[str] = Field(default=None, description="代理认证信息 (username:password)")

    # 文件存储配置
    storage_backend: str = Field(default="local", description="存储后端: local, s3")
    storage_root: str = Field(default="uploads", description="本地存储根目录")
    audio_bucket: str = Field(default="audio", description="音频存储桶")
    notes_bucket: str = Field(default="notes", description="文本存储桶")
    upload_url_expires: int = Field(default=3600, description="上传URL有效期(秒)")

    # AWS S3配置
    aws_access_key_id: Optional[str] = Field(default=None, description="AWS访问密钥ID")
    aws_secret_access_key: Optional[str] = Field(default=None, description="AWS秘密访问密钥")
    aws_region: str = Field(default="us-east-1", description="AWS区域")

    # 处理流程配置
    max_audio_bytes: int = Field(default=25 * 1024 * 1024, description="转录音频大小上限(25MB)")
    structure_max_chars: int = Field(default=8000, description="结构化输入截断长度")
    queued_duration_threshold: int = Field(default=120, description="超过该时长(秒)的音频返回202")
    optimistic_note_writes: bool = Field(default=False, description="笔记写入启用版本号比较")

    # 速率限制配置 (次数, 窗口秒数)
    rate_limit_presign: Dict[str, int] = Field(default={"max": 30, "window": 60})
    rate_limit_commit: Dict[str, int] = Field(default={"max": 15, "window": 60})
    rate_limit_search: Dict[str, int] = Field(default={"max": 60, "window": 60})
    rate_limit_regenerate: Dict[str, int] = Field(default={"max": 10, "window": 60})

    # 安全配置
    secret_key: str = Field(
        default="your-secret-key-change-this-in-production",
        description="JWT密钥"
    )
    algorithm: str = Field(default="HS256", description="JWT算法")

    # CORS配置
    allowed_origins: list = Field(
        default=["http://localhost:3000", "http://127.0.0.1:3000"],
        description="允许的跨域源"
    )

    # 日志配置
    log_dir: str = Field(default="logs", description="日志目录")
    log_to_file: bool = Field(default=True, description="是否写入日志文件")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    @property
    def ai_config(self):
        """获取AI服务配置"""
        # 动态导入以避免循环依赖
        from jot.services.ai.base import AIProvider, AIConfig

        proxy = {
            "http_proxy": self.http_proxy,
            "https_proxy": self.https_proxy,
            "proxy_auth": self.proxy_auth
        }

        if self.llm_provider == AIProvider.ANTHROPIC.value:
            llm_config = {
                "api_key": self.anthropic_api_key,
                "model": self.anthropic_model,
                "timeout": self.ai_timeout,
            }
        else:
            llm_config = {
                "api_key": self.openai_api_key,
                "base_url": self.openai_base_url,
                "model": self.openai_model,
                "timeout": self.ai_timeout,
                **proxy
            }

        return AIConfig(
            stt_provider=AIProvider.OPENAI,
            llm_provider=AIProvider(self.llm_provider),
            stt_config={
                "api_key": self.openai_api_key,
                "base_url": self.openai_base_url,
                "model": self.whisper_model,
                "timeout": self.ai_timeout,
                **proxy
            },
            llm_config=llm_config,
            default_stt_model=self.whisper_model,
            default_llm_model=llm_config["model"]
        )

    def ensure_directories(self):
        """确保必要的目录存在"""
        if self.storage_backend == "local":
            Path(self.storage_root).mkdir(exist_ok=True)
            Path(self.storage_root, self.audio_bucket).mkdir(exist_ok=True)
            Path(self.storage_root, self.notes_bucket).mkdir(exist_ok=True)


# 创建全局配置实例
settings = Settings()
settings.ensure_directories()
