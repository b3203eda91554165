"""
输入处理流水线

提交的音频或文本输入依次经过：获取 -> 提取 -> 合并 -> 结构化 -> 写入。
流水线在触发请求内同步执行，没有后台队列。
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from jot.config import settings
from jot.core.exceptions import ExtractionFailed, JotException, PersistFailed
from jot.core.logging import pipeline_logger
from jot.core.storage import StorageBackend, get_storage_backend
from jot.schemas.outline import Outline
from jot.services.aggregator import NoteAggregator
from jot.services.note import NoteService, NoteSnapshot, get_note_service
from jot.services.structuring import ContentStructurer
from jot.services.transcription import TranscriptionAdapter
from jot.utils.audio_utils import guess_audio_mime_from_path
from jot.utils.editor_doc import (
    PROCESSING_FAILED_TITLE,
    paragraphs_document,
    processing_failed_document
)
from jot.utils.file_utils import strip_bucket_prefix


class PipelineStage(str, Enum):
    """流水线阶段，FAILED 只能从获取或提取阶段进入"""
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    MERGING = "merging"
    STRUCTURING = "structuring"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class AudioContribution:
    """音频输入"""
    id: str
    storage_path: str
    mime_type: Optional[str] = None
    duration_s: Optional[int] = None


@dataclass
class TextContribution:
    """文本输入"""
    id: str
    storage_path: str
    mime_type: Optional[str] = None


Contribution = Union[AudioContribution, TextContribution]


@dataclass
class PipelineResult:
    """一次处理的结果"""
    note_id: str
    title: str
    content_text: Optional[str]
    editor_json: Dict[str, Any]
    outline_json: Optional[Dict[str, Any]]
    tags: List[str] = field(default_factory=list)
    contribution_id: Optional[str] = None
    transcribed: bool = False


class PipelineRun:
    """单次运行的上下文：运行ID、当前阶段和绑定了运行ID的日志器"""

    def __init__(self, kind: str, note_id: Optional[str] = None):
        self.run_id = uuid.uuid4().hex[:8]
        self.kind = kind
        self.stage = PipelineStage.FETCHING
        self.logger = pipeline_logger.bind(run_id=self.run_id)
        self.logger.info(f"开始{kind}处理 note={note_id}")

    def advance(self, stage: PipelineStage):
        self.stage = stage
        self.logger.debug(f"-> {stage.value}")

    def fail(self, error: Exception):
        self.stage = PipelineStage.FAILED
        self.logger.error(f"处理失败: {type(error).__name__}: {error}")


class PipelineOrchestrator:
    """流水线编排器"""

    def __init__(
        self,
        note_service: Optional[NoteService] = None,
        storage: Optional[StorageBackend] = None,
        transcriber: Optional[TranscriptionAdapter] = None,
        structurer: Optional[ContentStructurer] = None,
        aggregator: Optional[NoteAggregator] = None,
        optimistic_writes: Optional[bool] = None
    ):
        self.note_service = note_service or get_note_service()
        self.storage = storage or get_storage_backend()
        self.transcriber = transcriber or TranscriptionAdapter()
        self.structurer = structurer or ContentStructurer()
        self.aggregator = aggregator or NoteAggregator()
        if optimistic_writes is None:
            optimistic_writes = settings.optimistic_note_writes
        self.optimistic_writes = optimistic_writes

    async def run_audio_pipeline(self, user_id: str, note_id: str, audio_file_id: str) -> PipelineResult:
        """处理已提交的音频输入"""
        run = PipelineRun("音频", note_id)
        try:
            audio_file = await self.note_service.get_audio_file(user_id, note_id, audio_file_id)
        except JotException as e:
            run.fail(e)
            raise

        contribution = AudioContribution(
            id=audio_file.id,
            storage_path=audio_file.storage_path,
            mime_type=audio_file.mime_type,
            duration_s=audio_file.duration_s
        )
        return await self._run(run, user_id, note_id, contribution)

    async def run_text_pipeline(self, user_id: str, note_id: str, text_input_id: str) -> PipelineResult:
        """处理已提交的文本输入"""
        run = PipelineRun("文本", note_id)
        try:
            text_input = await self.note_service.get_text_input(user_id, note_id, text_input_id)
        except JotException as e:
            run.fail(e)
            raise

        contribution = TextContribution(
            id=text_input.id,
            storage_path=text_input.storage_path,
            mime_type=text_input.mime_type
        )
        return await self._run(run, user_id, note_id, contribution)

    async def _run(
        self,
        run: PipelineRun,
        user_id: str,
        note_id: str,
        contribution: Contribution
    ) -> PipelineResult:
        run.advance(PipelineStage.EXTRACTING)
        try:
            extracted = await self._extract(run, contribution)
        except ExtractionFailed as e:
            run.fail(e)
            raise

        run.advance(PipelineStage.MERGING)
        snapshot = await self._read_note_for_merge(user_id, note_id)
        merged = self.aggregator.merge(snapshot.content_text, extracted)

        is_audio = isinstance(contribution, AudioContribution)
        run.advance(PipelineStage.STRUCTURING)
        values = await self._structure(snapshot, merged, is_audio)

        await self._persist(run, user_id, snapshot, values)
        run.logger.info(f"处理完成 note={note_id} contribution={contribution.id}")

        return self._result(snapshot, values, contribution.id, is_audio)

    async def rebuild_note(self, user_id: str, note_id: str) -> PipelineResult:
        """
        用笔记已有的全部输入重新生成内容

        按提交顺序合并所有输入，已有转录的音频不再转录。
        内容整体替换而不是追加，重复执行结果相同。
        """
        run = PipelineRun("重建", note_id)
        try:
            note = await self.note_service.get_note(user_id, note_id, with_inputs=True)
        except JotException as e:
            run.fail(e)
            raise

        contributions: List[Contribution] = [
            AudioContribution(
                id=audio_file.id,
                storage_path=audio_file.storage_path,
                mime_type=audio_file.mime_type,
                duration_s=audio_file.duration_s
            )
            for audio_file in note.audio_files
        ]
        contributions.extend(
            TextContribution(id=t.id, storage_path=t.storage_path, mime_type=t.mime_type)
            for t in note.text_inputs
        )
        created = {item.id: item.created_at for item in [*note.audio_files, *note.text_inputs]}
        contributions.sort(key=lambda c: created[c.id])

        run.advance(PipelineStage.EXTRACTING)
        try:
            parts = [await self._extract(run, contribution) for contribution in contributions]
        except ExtractionFailed as e:
            run.fail(e)
            raise

        run.advance(PipelineStage.MERGING)
        snapshot = await self._read_note_for_merge(user_id, note_id)
        merged = self.aggregator.merge_all(parts)

        has_audio = bool(note.audio_files)
        run.advance(PipelineStage.STRUCTURING)
        values = await self._structure(snapshot, merged, has_audio)

        await self._persist(run, user_id, snapshot, values)
        run.logger.info(f"重建完成 note={note_id} inputs={len(contributions)}")

        return self._result(snapshot, values, None, has_audio)

    async def _structure(self, snapshot: NoteSnapshot, merged: Optional[str], is_audio: bool) -> Dict[str, Any]:
        values: Dict[str, Any] = {"content_text": merged}
        if is_audio:
            outline = await self.structurer.structure(merged)
            values["editor_json"] = await self.structurer.render(outline)
            values["outline_json"] = outline.model_dump()
            values["tags"] = list(outline.tags)
            if not snapshot.title:
                values["title"] = outline.title
        else:
            values["editor_json"] = paragraphs_document(merged)
            if not snapshot.title:
                values["title"] = self.aggregator.fallback_title(merged)
        return values

    async def _persist(self, run: PipelineRun, user_id: str, snapshot: NoteSnapshot, values: Dict[str, Any]):
        run.advance(PipelineStage.PERSISTING)
        expected_version = snapshot.version if self.optimistic_writes else None
        await self.note_service.write_note(user_id, snapshot.id, values, expected_version=expected_version)
        run.advance(PipelineStage.DONE)

    @staticmethod
    def _result(
        snapshot: NoteSnapshot,
        values: Dict[str, Any],
        contribution_id: Optional[str],
        transcribed: bool
    ) -> PipelineResult:
        return PipelineResult(
            note_id=snapshot.id,
            title=values.get("title", snapshot.title),
            content_text=values["content_text"],
            editor_json=values["editor_json"],
            outline_json=values.get("outline_json", snapshot.outline_json),
            tags=values.get("tags", snapshot.tags),
            contribution_id=contribution_id,
            transcribed=transcribed
        )

    async def _read_note_for_merge(self, user_id: str, note_id: str) -> NoteSnapshot:
        """合并前重新读取笔记；与写入之间没有锁"""
        return await self.note_service.get_note_snapshot(user_id, note_id)

    async def _extract(self, run: PipelineRun, contribution: Contribution) -> str:
        if isinstance(contribution, AudioContribution):
            return await self._extract_audio(run, contribution)
        return await self._extract_text(run, contribution)

    async def _extract_audio(self, run: PipelineRun, contribution: AudioContribution) -> str:
        # 每个音频只转录一次，再次处理时沿用已保存的转录
        existing = await self.note_service.get_audio_transcript(contribution.id)
        if existing is not None:
            run.logger.info(f"沿用已有转录 audio_file={contribution.id}")
            return existing.text

        data = await self._download(settings.audio_bucket, contribution.storage_path)
        mime_type = contribution.mime_type or guess_audio_mime_from_path(contribution.storage_path)

        result = await self.transcriber.transcribe(data, mime_type)
        # 转录结果在后续阶段失败时也保留
        await self.note_service.save_transcript(
            result.text, result.segments, audio_file_id=contribution.id
        )
        run.logger.info(f"转录已保存 audio_file={contribution.id}")
        return result.text

    async def _extract_text(self, run: PipelineRun, contribution: TextContribution) -> str:
        data = await self._download(settings.notes_bucket, contribution.storage_path)
        return data.decode("utf-8", errors="replace")

    async def _download(self, bucket: str, storage_path: str) -> bytes:
        key = strip_bucket_prefix(storage_path, bucket)
        try:
            return await self.storage.download(bucket, key)
        except FileNotFoundError as e:
            raise ExtractionFailed(f"Stored input not found: {bucket}/{key}") from e
        except Exception as e:
            pipeline_logger.error(f"下载失败: {bucket}/{key}: {e}")
            raise ExtractionFailed(f"Failed to download {bucket}/{key}") from e

    # 旧版单次采集

    async def process_capture(self, user_id: str, capture_id: str) -> PipelineResult:
        """
        为一次采集生成新笔记

        获取采集记录之后的任何失败都会尝试一次降级恢复：用已保存的转录
        （或重新下载的文本）生成标题为 "Processing Failed" 的笔记。
        恢复也无法得到文本时抛出原始错误。
        """
        run = PipelineRun("采集")
        try:
            capture = await self.note_service.get_capture(user_id, capture_id)
        except JotException as e:
            run.fail(e)
            raise

        is_audio = bool(capture.audio_path)
        try:
            run.advance(PipelineStage.EXTRACTING)
            if is_audio:
                data = await self._download(settings.audio_bucket, capture.audio_path)
                mime_type = capture.mime_type or guess_audio_mime_from_path(capture.audio_path)
                result = await self.transcriber.transcribe(data, mime_type)
                await self.note_service.save_transcript(
                    result.text, result.segments, capture_id=capture.id
                )
                text = result.text
            else:
                data = await self._download(settings.notes_bucket, capture.text_path or "")
                text = data.decode("utf-8", errors="replace")

            run.advance(PipelineStage.STRUCTURING)
            outline = await self.structurer.structure(text)
            editor_json = await self.structurer.render(outline)

            run.advance(PipelineStage.PERSISTING)
            note = await self.note_service.create_note_from_capture(
                user_id,
                capture.id,
                title=outline.title,
                content_text=text,
                editor_json=editor_json,
                outline_json=outline.model_dump(),
                tags=list(outline.tags)
            )
        except Exception as e:
            run.fail(e)
            recovered = await self._recover_capture(run, user_id, capture)
            if recovered is not None:
                return recovered
            if isinstance(e, JotException):
                raise
            raise PersistFailed(f"Failed to process capture: {e}") from e

        run.advance(PipelineStage.DONE)
        run.logger.info(f"采集处理完成 capture={capture.id} note={note.id}")
        return PipelineResult(
            note_id=note.id,
            title=note.title,
            content_text=note.content_text,
            editor_json=note.editor_json,
            outline_json=note.outline_json,
            tags=list(note.tags or []),
            contribution_id=capture.id,
            transcribed=is_audio
        )

    async def _recover_capture(self, run: PipelineRun, user_id: str, capture) -> Optional[PipelineResult]:
        """降级恢复：只要能拿到原始文本就生成一篇失败笔记"""
        run.logger.warning(f"尝试降级恢复 capture={capture.id}")
        try:
            if capture.audio_path:
                transcript = await self.note_service.get_capture_transcript(capture.id)
                raw_text = transcript.text if transcript else None
            else:
                data = await self._download(settings.notes_bucket, capture.text_path or "")
                raw_text = data.decode("utf-8", errors="replace")

            if not raw_text or not raw_text.strip():
                run.logger.warning("没有可恢复的文本")
                return None

            outline = Outline.fallback().model_copy(update={"title": PROCESSING_FAILED_TITLE})
            note = await self.note_service.create_note_from_capture(
                user_id,
                capture.id,
                title=PROCESSING_FAILED_TITLE,
                content_text=raw_text,
                editor_json=processing_failed_document(raw_text),
                outline_json=outline.model_dump(),
                tags=[]
            )
        except (JotException, SQLAlchemyError) as e:
            run.logger.error(f"降级恢复失败: {e}")
            return None

        run.logger.info(f"降级恢复完成 note={note.id}")
        return PipelineResult(
            note_id=note.id,
            title=note.title,
            content_text=note.content_text,
            editor_json=note.editor_json,
            outline_json=note.outline_json,
            tags=[],
            contribution_id=capture.id,
            transcribed=bool(capture.audio_path)
        )


_orchestrator: Optional[PipelineOrchestrator] = None


def get_pipeline_orchestrator() -> PipelineOrchestrator:
    """获取流水线编排器实例"""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = PipelineOrchestrator()
    return _orchestrator
