"""
笔记服务

所有查询都按调用者ID限定范围：不属于调用者的笔记与不存在的笔记表现一致。
每个方法使用独立的数据库会话，读和写之间不持有锁。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm import selectinload

from jot.core.exceptions import NotFoundException, PersistFailed
from jot.core.logging import service_logger
from jot.db.base import utcnow
from jot.db.session import AsyncSessionLocal
from jot.models import AudioFile, Capture, Note, TextInput, Transcript
from jot.utils.editor_doc import single_paragraph_document


@dataclass
class NoteSnapshot:
    """合并前读取的笔记快照"""
    id: str
    title: str
    content_text: Optional[str]
    outline_json: Optional[Dict[str, Any]]
    tags: List[str] = field(default_factory=list)
    version: int = 1


class NoteService:
    """笔记服务"""

    def __init__(self, session_factory: async_sessionmaker = None):
        self.session_factory = session_factory or AsyncSessionLocal

    # 笔记

    async def create_note(
        self,
        user_id: str,
        title: str,
        content_text: Optional[str] = None,
        tags: Optional[List[str]] = None
    ) -> Note:
        """
        创建笔记

        Args:
            user_id: 所有者ID
            title: 标题
            content_text: 初始文本，存在时生成单段落文档
            tags: 标签

        Returns:
            Note: 新建的笔记
        """
        note = Note(
            user_id=user_id,
            title=title,
            content_text=content_text,
            editor_json=single_paragraph_document(content_text),
            tags=list(tags or [])
        )

        async with self.session_factory() as session:
            session.add(note)
            await session.commit()
            await session.refresh(note)

        service_logger.info(f"创建笔记: {note.id} (user={user_id})")
        return note

    async def get_note(self, user_id: str, note_id: str, with_inputs: bool = False) -> Note:
        """获取笔记，不存在或不属于调用者时抛出 NotFoundException"""
        query = select(Note).where(Note.id == note_id, Note.user_id == user_id)
        if with_inputs:
            query = query.options(
                selectinload(Note.audio_files).selectinload(AudioFile.transcript),
                selectinload(Note.text_inputs)
            )

        async with self.session_factory() as session:
            result = await session.execute(query)
            note = result.scalar_one_or_none()

        if note is None:
            raise NotFoundException("Note")
        return note

    async def get_note_snapshot(self, user_id: str, note_id: str) -> NoteSnapshot:
        """读取笔记当前内容及版本号"""
        note = await self.get_note(user_id, note_id)
        return NoteSnapshot(
            id=note.id,
            title=note.title or "",
            content_text=note.content_text,
            outline_json=note.outline_json,
            tags=list(note.tags or []),
            version=note.version
        )

    async def update_note(self, user_id: str, note_id: str, values: Dict[str, Any]) -> Note:
        """按字段更新笔记（用户编辑），版本号递增"""
        await self.write_note(user_id, note_id, values)
        return await self.get_note(user_id, note_id)

    async def write_note(
        self,
        user_id: str,
        note_id: str,
        values: Dict[str, Any],
        expected_version: Optional[int] = None
    ) -> int:
        """
        写入笔记字段

        Args:
            user_id: 调用者ID
            note_id: 笔记ID
            values: 要写入的列
            expected_version: 给定时仅在版本号一致时写入（比较并交换）

        Returns:
            int: 写入后的版本号

        Raises:
            PersistFailed: 数据库错误、笔记已消失或版本冲突
        """
        conditions = [Note.id == note_id, Note.user_id == user_id]
        if expected_version is not None:
            conditions.append(Note.version == expected_version)

        statement = (
            update(Note)
            .where(*conditions)
            .values(**values, version=Note.version + 1, updated_at=utcnow())
        )

        try:
            async with self.session_factory() as session:
                result = await session.execute(statement)
                new_version = None
                if result.rowcount:
                    new_version = await session.scalar(
                        select(Note.version).where(Note.id == note_id)
                    )
                await session.commit()
        except SQLAlchemyError as e:
            service_logger.error(f"笔记写入失败: {note_id}: {e}")
            raise PersistFailed(f"Failed to persist note: {e}") from e

        if new_version is None:
            if expected_version is not None:
                service_logger.warning(f"笔记版本冲突: {note_id} expected={expected_version}")
                raise PersistFailed("Note was modified concurrently")
            raise PersistFailed("Note no longer exists")

        return new_version

    async def search_notes(
        self,
        user_id: str,
        query: Optional[str] = None,
        tag: Optional[str] = None,
        limit: int = 50
    ) -> List[Note]:
        """
        搜索调用者的笔记，按创建时间倒序

        Args:
            user_id: 调用者ID
            query: 标题包含的文本（不区分大小写）
            tag: 必须包含的标签
            limit: 返回数量上限
        """
        statement = select(Note).where(Note.user_id == user_id)
        if query:
            statement = statement.where(func.lower(Note.title).contains(query.lower(), autoescape=True))
        statement = statement.order_by(Note.created_at.desc())

        async with self.session_factory() as session:
            result = await session.execute(statement)
            notes = list(result.scalars().all())

        # 标签存放在JSON列中，在内存中过滤
        if tag:
            notes = [note for note in notes if tag in (note.tags or [])]

        return notes[:limit]

    # 输入

    async def add_audio_file(
        self,
        user_id: str,
        note_id: str,
        storage_path: str,
        mime_type: Optional[str] = None,
        duration_s: Optional[int] = None
    ) -> AudioFile:
        """记录已上传的音频，顺序号取当前最大值加一"""
        await self.get_note(user_id, note_id)

        async with self.session_factory() as session:
            result = await session.execute(
                select(func.max(AudioFile.order_index)).where(AudioFile.note_id == note_id)
            )
            max_index = result.scalar()

            audio_file = AudioFile(
                note_id=note_id,
                storage_path=storage_path,
                mime_type=mime_type,
                duration_s=duration_s,
                order_index=0 if max_index is None else max_index + 1
            )
            session.add(audio_file)
            await session.commit()
            await session.refresh(audio_file)

        return audio_file

    async def add_text_input(
        self,
        user_id: str,
        note_id: str,
        storage_path: str,
        mime_type: Optional[str] = None
    ) -> TextInput:
        """记录已上传的文本输入"""
        await self.get_note(user_id, note_id)

        text_input = TextInput(note_id=note_id, storage_path=storage_path, mime_type=mime_type)
        async with self.session_factory() as session:
            session.add(text_input)
            await session.commit()
            await session.refresh(text_input)

        return text_input

    async def get_audio_file(self, user_id: str, note_id: str, audio_file_id: str) -> AudioFile:
        """获取属于调用者笔记的音频输入"""
        async with self.session_factory() as session:
            result = await session.execute(
                select(AudioFile)
                .join(Note, AudioFile.note_id == Note.id)
                .where(
                    AudioFile.id == audio_file_id,
                    AudioFile.note_id == note_id,
                    Note.user_id == user_id
                )
            )
            audio_file = result.scalar_one_or_none()

        if audio_file is None:
            raise NotFoundException("Audio file")
        return audio_file

    async def get_text_input(self, user_id: str, note_id: str, text_input_id: str) -> TextInput:
        """获取属于调用者笔记的文本输入"""
        async with self.session_factory() as session:
            result = await session.execute(
                select(TextInput)
                .join(Note, TextInput.note_id == Note.id)
                .where(
                    TextInput.id == text_input_id,
                    TextInput.note_id == note_id,
                    Note.user_id == user_id
                )
            )
            text_input = result.scalar_one_or_none()

        if text_input is None:
            raise NotFoundException("Text input")
        return text_input

    # 转录

    async def save_transcript(
        self,
        text: str,
        segments: List[Dict[str, Any]],
        audio_file_id: Optional[str] = None,
        capture_id: Optional[str] = None
    ) -> Transcript:
        """
        保存转录结果，只创建不更新

        Raises:
            PersistFailed: 数据库错误，包括同一输入已有转录
        """
        transcript = Transcript(
            audio_file_id=audio_file_id,
            capture_id=capture_id,
            text=text,
            segments_json=segments
        )
        try:
            async with self.session_factory() as session:
                session.add(transcript)
                await session.commit()
                await session.refresh(transcript)
        except SQLAlchemyError as e:
            owner = audio_file_id or capture_id
            service_logger.error(f"转录写入失败: {owner}: {e}")
            raise PersistFailed(f"Failed to persist transcript: {e}") from e

        return transcript

    async def get_audio_transcript(self, audio_file_id: str) -> Optional[Transcript]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Transcript).where(Transcript.audio_file_id == audio_file_id)
            )
            return result.scalar_one_or_none()

    async def get_capture_transcript(self, capture_id: str) -> Optional[Transcript]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Transcript).where(Transcript.capture_id == capture_id)
            )
            return result.scalar_one_or_none()

    # 旧版单次采集

    async def create_capture(
        self,
        user_id: str,
        audio_path: Optional[str] = None,
        text_path: Optional[str] = None,
        mime_type: Optional[str] = None,
        duration_s: Optional[int] = None
    ) -> Capture:
        """记录一次采集"""
        capture = Capture(
            user_id=user_id,
            audio_path=audio_path,
            text_path=text_path,
            mime_type=mime_type,
            duration_s=duration_s
        )
        async with self.session_factory() as session:
            session.add(capture)
            await session.commit()
            await session.refresh(capture)

        return capture

    async def get_capture(self, user_id: str, capture_id: str) -> Capture:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Capture).where(Capture.id == capture_id, Capture.user_id == user_id)
            )
            capture = result.scalar_one_or_none()

        if capture is None:
            raise NotFoundException("Capture")
        return capture

    async def create_note_from_capture(
        self,
        user_id: str,
        capture_id: str,
        title: str,
        content_text: Optional[str],
        editor_json: Dict[str, Any],
        outline_json: Optional[Dict[str, Any]],
        tags: List[str]
    ) -> Note:
        """为一次采集创建完整的新笔记"""
        note = Note(
            user_id=user_id,
            capture_id=capture_id,
            title=title,
            content_text=content_text,
            editor_json=editor_json,
            outline_json=outline_json,
            tags=list(tags)
        )

        try:
            async with self.session_factory() as session:
                session.add(note)
                await session.commit()
                await session.refresh(note)
        except SQLAlchemyError as e:
            service_logger.error(f"采集笔记写入失败: {capture_id}: {e}")
            raise PersistFailed(f"Failed to persist note: {e}") from e

        return note


# 全局服务实例
_note_service: Optional[NoteService] = None


def get_note_service() -> NoteService:
    """获取笔记服务实例"""
    global _note_service
    if _note_service is None:
        _note_service = NoteService()
    return _note_service
