"""
处理流水线测试
"""

import asyncio
import json

import pytest
from sqlalchemy import select

from jot.config import settings
from jot.core.exceptions import (
    ExtractionFailed,
    NotFoundException,
    PersistFailed,
    TranscriptionException,
    TranscriptionFailureReason
)
from jot.models import Transcript
from jot.services.pipeline import PipelineOrchestrator
from jot.services.structuring import ContentStructurer
from jot.services.transcription import TranscriptionAdapter
from conftest import (
    FakeLLMProvider,
    FakeSTTProvider,
    M4A_BYTES,
    MP4_BYTES,
    OTHER_USER_ID,
    USER_ID,
    VALID_OUTLINE,
    WEBM_BYTES
)


async def _add_text(note_service, storage, note_id, key, text):
    await storage.upload(settings.notes_bucket, key, text.encode("utf-8"))
    text_input = await note_service.add_text_input(USER_ID, note_id, key, "text/plain")
    return text_input.id


async def _add_audio(note_service, storage, note_id, key, data=WEBM_BYTES, mime="audio/mp4", duration_s=60):
    await storage.upload(settings.audio_bucket, key, data)
    audio_file = await note_service.add_audio_file(USER_ID, note_id, key, mime, duration_s)
    return audio_file.id


def _h2_titles(doc):
    return [
        block["content"][0]["text"]
        for block in doc["content"]
        if block["type"] == "heading" and block["attrs"]["level"] == 2
    ]


class TestAudioPipeline:
    """音频输入处理测试"""

    @pytest.mark.asyncio
    async def test_mislabeled_recording_is_structured(self, orchestrator, note_service, storage, stt, llm):
        """Safari声明为mp4的webm录音被正确转录并生成大纲"""
        stt.text = "We shipped version 2 and signed 3 new customers."
        llm.responses = [json.dumps(VALID_OUTLINE), "not a document"]
        note = await note_service.create_note(USER_ID, title="placeholder")
        await note_service.write_note(USER_ID, note.id, {"title": ""})
        audio_file_id = await _add_audio(note_service, storage, note.id, "k1-recording.mp4")

        result = await orchestrator.run_audio_pipeline(USER_ID, note.id, audio_file_id)

        assert stt.calls[0]["name"] == "audio.webm"
        assert result.transcribed is True
        assert result.contribution_id == audio_file_id

        stored = await note_service.get_note(USER_ID, note.id, with_inputs=True)
        assert stored.content_text == stt.text
        assert stored.title == "Weekly sync"
        assert stored.tags == ["work"]
        assert stored.outline_json["highlights"] == VALID_OUTLINE["highlights"]
        assert "Highlights" in _h2_titles(stored.editor_json)
        assert stored.audio_files[0].transcript.text == stt.text
        assert stored.audio_files[0].transcript.segments_json[0]["end"] == 1.5

    @pytest.mark.asyncio
    @pytest.mark.parametrize("data, staged_name", [
        (MP4_BYTES, "audio.mp4"),
        (M4A_BYTES, "audio.m4a"),
    ])
    async def test_iso_media_declared_as_webm(
        self, orchestrator, note_service, storage, stt, llm, data, staged_name
    ):
        """声明为webm的ISO媒体录音按真实容器暂存"""
        llm.responses = [json.dumps(VALID_OUTLINE)]
        note = await note_service.create_note(USER_ID, title="t")
        audio_file_id = await _add_audio(
            note_service, storage, note.id, "iso-recording.webm", data=data, mime="audio/webm"
        )

        await orchestrator.run_audio_pipeline(USER_ID, note.id, audio_file_id)

        assert stt.calls[0]["name"] == staged_name
        assert stt.calls[0]["content"] == data
        stored = await note_service.get_note(USER_ID, note.id)
        assert stored.content_text == stt.text

    @pytest.mark.asyncio
    async def test_transcript_kept_when_write_fails(self, orchestrator, note_service, storage, monkeypatch):
        """转录之后的写入失败不会回滚已保存的转录"""
        note = await note_service.create_note(USER_ID, title="t", content_text="before")
        audio_file_id = await _add_audio(note_service, storage, note.id, "kw.webm")

        async def failing_write(*args, **kwargs):
            raise PersistFailed("disk full")

        monkeypatch.setattr(note_service, "write_note", failing_write)

        with pytest.raises(PersistFailed):
            await orchestrator.run_audio_pipeline(USER_ID, note.id, audio_file_id)

        transcript = await note_service.get_audio_transcript(audio_file_id)
        assert transcript.text == "hello from the recording"
        stored = await note_service.get_note(USER_ID, note.id)
        assert stored.content_text == "before"

    @pytest.mark.asyncio
    async def test_second_run_reuses_transcript(self, orchestrator, note_service, storage, stt, session_factory):
        """同一音频再次处理时不重新转录，也不重复保存转录"""
        note = await note_service.create_note(USER_ID, title="t")
        audio_file_id = await _add_audio(note_service, storage, note.id, "again.webm")

        await orchestrator.run_audio_pipeline(USER_ID, note.id, audio_file_id)
        result = await orchestrator.run_audio_pipeline(USER_ID, note.id, audio_file_id)

        assert len(stt.calls) == 1
        assert result.transcribed is True
        async with session_factory() as session:
            transcripts = (await session.execute(select(Transcript))).scalars().all()
        assert [t.audio_file_id for t in transcripts] == [audio_file_id]

    @pytest.mark.asyncio
    async def test_invalid_structurer_output_still_persists(self, orchestrator, note_service, storage, llm):
        """结构化返回非法JSON时使用降级大纲，内容照常写入"""
        llm.responses = ["{not json", "also not json"]
        note = await note_service.create_note(USER_ID, title="x")
        await note_service.write_note(USER_ID, note.id, {"title": ""})
        audio_file_id = await _add_audio(note_service, storage, note.id, "k2.webm", mime="audio/webm")

        result = await orchestrator.run_audio_pipeline(USER_ID, note.id, audio_file_id)

        stored = await note_service.get_note(USER_ID, note.id)
        assert stored.content_text == "hello from the recording"
        assert stored.title == "Untitled Note"
        assert stored.tags == []
        assert stored.outline_json["highlights"] == []
        assert stored.editor_json["content"][0]["content"][0]["text"] == "Untitled Note"
        assert result.outline_json == stored.outline_json

    @pytest.mark.asyncio
    async def test_existing_title_kept(self, orchestrator, note_service, storage, llm):
        llm.responses = [json.dumps(VALID_OUTLINE)]
        note = await note_service.create_note(USER_ID, title="My own title")
        audio_file_id = await _add_audio(note_service, storage, note.id, "k3.webm")

        await orchestrator.run_audio_pipeline(USER_ID, note.id, audio_file_id)

        stored = await note_service.get_note(USER_ID, note.id)
        assert stored.title == "My own title"
        assert stored.outline_json["title"] == "Weekly sync"

    @pytest.mark.asyncio
    async def test_audio_appends_to_existing_content(self, orchestrator, note_service, storage, llm):
        llm.responses = [json.dumps(VALID_OUTLINE)]
        note = await note_service.create_note(USER_ID, title="t", content_text="typed before")
        audio_file_id = await _add_audio(note_service, storage, note.id, "k4.webm")

        await orchestrator.run_audio_pipeline(USER_ID, note.id, audio_file_id)

        stored = await note_service.get_note(USER_ID, note.id)
        assert stored.content_text == "typed before\n\nhello from the recording"
        assert "typed before" in llm.calls[0]["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_transcription_failure_leaves_note_unchanged(self, note_service, storage, llm):
        error = TranscriptionException("auth", reason=TranscriptionFailureReason.UPSTREAM_AUTH)
        orchestrator = PipelineOrchestrator(
            note_service=note_service,
            storage=storage,
            transcriber=TranscriptionAdapter(stt_provider=FakeSTTProvider(error=error)),
            structurer=ContentStructurer(llm_provider=llm)
        )
        note = await note_service.create_note(USER_ID, title="t", content_text="before")
        audio_file_id = await _add_audio(note_service, storage, note.id, "k5.webm")

        with pytest.raises(TranscriptionException) as exc_info:
            await orchestrator.run_audio_pipeline(USER_ID, note.id, audio_file_id)

        assert exc_info.value.reason == TranscriptionFailureReason.UPSTREAM_AUTH
        stored = await note_service.get_note(USER_ID, note.id, with_inputs=True)
        assert stored.content_text == "before"
        assert stored.version == note.version
        assert stored.audio_files[0].transcript is None
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_oversized_audio_rejected(self, note_service, storage, stt, llm):
        orchestrator = PipelineOrchestrator(
            note_service=note_service,
            storage=storage,
            transcriber=TranscriptionAdapter(stt_provider=stt, max_bytes=16),
            structurer=ContentStructurer(llm_provider=llm)
        )
        note = await note_service.create_note(USER_ID, title="t")
        audio_file_id = await _add_audio(note_service, storage, note.id, "k6.webm")

        with pytest.raises(TranscriptionException) as exc_info:
            await orchestrator.run_audio_pipeline(USER_ID, note.id, audio_file_id)

        assert exc_info.value.reason == TranscriptionFailureReason.TOO_LARGE
        assert stt.calls == []


class TestTextPipeline:
    """文本输入处理测试"""

    @pytest.mark.asyncio
    async def test_two_sequential_commits(self, orchestrator, note_service, storage, llm):
        """两次文本提交按顺序追加，标题取自第一个段落"""
        note = await note_service.create_note(USER_ID, title="x")
        await note_service.write_note(USER_ID, note.id, {"title": ""})

        first = await _add_text(note_service, storage, note.id, "a-first.txt", "Grocery list\n\nmilk, eggs")
        await orchestrator.run_text_pipeline(USER_ID, note.id, first)
        second = await _add_text(note_service, storage, note.id, "b-second.md", "call the plumber")
        result = await orchestrator.run_text_pipeline(USER_ID, note.id, second)

        stored = await note_service.get_note(USER_ID, note.id)
        assert stored.content_text == "Grocery list\n\nmilk, eggs\n\ncall the plumber"
        assert stored.title == "Grocery list"
        texts = [block["content"][0]["text"] for block in stored.editor_json["content"]]
        assert texts == ["Grocery list", "milk, eggs", "call the plumber"]
        assert result.transcribed is False
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_outline_and_tags_preserved(self, orchestrator, note_service, storage):
        note = await note_service.create_note(USER_ID, title="Kept", tags=["mine"])
        await note_service.write_note(USER_ID, note.id, {"outline_json": VALID_OUTLINE, "tags": ["work"]})
        text_input_id = await _add_text(note_service, storage, note.id, "c.txt", "more words")

        result = await orchestrator.run_text_pipeline(USER_ID, note.id, text_input_id)

        stored = await note_service.get_note(USER_ID, note.id)
        assert stored.title == "Kept"
        assert stored.outline_json == VALID_OUTLINE
        assert stored.tags == ["work"]
        assert result.tags == ["work"]

    @pytest.mark.asyncio
    async def test_invalid_utf8_replaced(self, orchestrator, note_service, storage):
        note = await note_service.create_note(USER_ID, title="t")
        await storage.upload(settings.notes_bucket, "bad.txt", b"caf\xe9 latte")
        text_input = await note_service.add_text_input(USER_ID, note.id, "bad.txt", "text/plain")

        await orchestrator.run_text_pipeline(USER_ID, note.id, text_input.id)

        stored = await note_service.get_note(USER_ID, note.id)
        assert stored.content_text == "caf\ufffd latte"

    @pytest.mark.asyncio
    async def test_bucket_prefix_stripped(self, orchestrator, note_service, storage):
        note = await note_service.create_note(USER_ID, title="t")
        await storage.upload(settings.notes_bucket, "d.txt", b"prefixed")
        text_input = await note_service.add_text_input(
            USER_ID, note.id, f"{settings.notes_bucket}/d.txt", "text/plain"
        )

        await orchestrator.run_text_pipeline(USER_ID, note.id, text_input.id)

        stored = await note_service.get_note(USER_ID, note.id)
        assert stored.content_text == "prefixed"

    @pytest.mark.asyncio
    async def test_missing_blob_is_extraction_failure(self, orchestrator, note_service):
        note = await note_service.create_note(USER_ID, title="t", content_text="before")
        text_input = await note_service.add_text_input(USER_ID, note.id, "missing.txt", "text/plain")

        with pytest.raises(ExtractionFailed):
            await orchestrator.run_text_pipeline(USER_ID, note.id, text_input.id)

        stored = await note_service.get_note(USER_ID, note.id)
        assert stored.content_text == "before"
        assert stored.version == note.version

    @pytest.mark.asyncio
    async def test_other_users_note_not_found(self, orchestrator, note_service, storage):
        note = await note_service.create_note(USER_ID, title="t", content_text="before")
        text_input_id = await _add_text(note_service, storage, note.id, "e.txt", "intruder")

        with pytest.raises(NotFoundException):
            await orchestrator.run_text_pipeline(OTHER_USER_ID, note.id, text_input_id)

        stored = await note_service.get_note(USER_ID, note.id)
        assert stored.content_text == "before"

    @pytest.mark.asyncio
    async def test_unknown_contribution_not_found(self, orchestrator, note_service):
        note = await note_service.create_note(USER_ID, title="t")
        with pytest.raises(NotFoundException):
            await orchestrator.run_text_pipeline(USER_ID, note.id, "does-not-exist")
        with pytest.raises(NotFoundException):
            await orchestrator.run_audio_pipeline(USER_ID, note.id, "does-not-exist")


class TestRebuildNote:
    """用已有输入重建笔记"""

    @pytest.mark.asyncio
    async def test_rebuild_is_repeatable(self, orchestrator, note_service, storage, stt):
        note = await note_service.create_note(USER_ID, title="t")
        audio_file_id = await _add_audio(note_service, storage, note.id, "r1.webm")
        await orchestrator.run_audio_pipeline(USER_ID, note.id, audio_file_id)
        text_input_id = await _add_text(note_service, storage, note.id, "r2.txt", "typed later")
        await orchestrator.run_text_pipeline(USER_ID, note.id, text_input_id)

        first = await orchestrator.rebuild_note(USER_ID, note.id)
        second = await orchestrator.rebuild_note(USER_ID, note.id)

        expected = "hello from the recording\n\ntyped later"
        assert first.content_text == expected
        assert second.content_text == expected
        assert second.transcribed is True
        assert len(stt.calls) == 1

        stored = await note_service.get_note(USER_ID, note.id)
        assert stored.content_text == expected
        assert stored.title == "t"

    @pytest.mark.asyncio
    async def test_rebuild_transcribes_pending_audio(self, orchestrator, note_service, storage, stt):
        note = await note_service.create_note(USER_ID, title="t")
        audio_file_id = await _add_audio(note_service, storage, note.id, "r3.webm")

        result = await orchestrator.rebuild_note(USER_ID, note.id)

        assert len(stt.calls) == 1
        assert result.content_text == "hello from the recording"
        transcript = await note_service.get_audio_transcript(audio_file_id)
        assert transcript is not None

    @pytest.mark.asyncio
    async def test_rebuild_text_only_note(self, orchestrator, note_service, storage, llm):
        note = await note_service.create_note(USER_ID, title="t")
        for key, text in (("r4.txt", "one"), ("r5.txt", "two")):
            text_input_id = await _add_text(note_service, storage, note.id, key, text)
            await orchestrator.run_text_pipeline(USER_ID, note.id, text_input_id)

        await orchestrator.rebuild_note(USER_ID, note.id)

        stored = await note_service.get_note(USER_ID, note.id)
        assert stored.content_text == "one\n\ntwo"
        texts = [block["content"][0]["text"] for block in stored.editor_json["content"]]
        assert texts == ["one", "two"]
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_rebuild_other_users_note(self, orchestrator, note_service):
        note = await note_service.create_note(USER_ID, title="t")
        with pytest.raises(NotFoundException):
            await orchestrator.rebuild_note(OTHER_USER_ID, note.id)


class BarrierOrchestrator(PipelineOrchestrator):
    """所有运行都读取笔记之后才继续，用于稳定复现并发写入"""

    def __init__(self, *args, parties: int = 2, **kwargs):
        super().__init__(*args, **kwargs)
        self.parties = parties
        self.arrived = 0
        self.all_read = asyncio.Event()

    async def _read_note_for_merge(self, user_id, note_id):
        snapshot = await super()._read_note_for_merge(user_id, note_id)
        self.arrived += 1
        if self.arrived >= self.parties:
            self.all_read.set()
        await asyncio.wait_for(self.all_read.wait(), timeout=5)
        return snapshot


class TestConcurrentWrites:
    """同一笔记上的并发处理"""

    async def _prepare(self, note_service, storage):
        note = await note_service.create_note(USER_ID, title="t", content_text="base")
        first = await _add_text(note_service, storage, note.id, "race-a.txt", "from A")
        second = await _add_text(note_service, storage, note.id, "race-b.txt", "from B")
        return note, first, second

    @pytest.mark.asyncio
    async def test_last_write_wins_loses_an_update(self, note_service, storage, stt, llm):
        """默认模式下两次并发处理会丢失其中一次更新"""
        orchestrator = BarrierOrchestrator(
            note_service=note_service,
            storage=storage,
            transcriber=TranscriptionAdapter(stt_provider=stt),
            structurer=ContentStructurer(llm_provider=llm),
            optimistic_writes=False
        )
        note, first, second = await self._prepare(note_service, storage)

        results = await asyncio.gather(
            orchestrator.run_text_pipeline(USER_ID, note.id, first),
            orchestrator.run_text_pipeline(USER_ID, note.id, second)
        )

        stored = await note_service.get_note(USER_ID, note.id)
        assert stored.content_text in ("base\n\nfrom A", "base\n\nfrom B")
        assert {r.content_text for r in results} == {"base\n\nfrom A", "base\n\nfrom B"}
        assert stored.version == note.version + 2

    @pytest.mark.asyncio
    async def test_optimistic_mode_rejects_stale_write(self, note_service, storage, stt, llm):
        """比较并交换模式下落后的一次写入失败，而不是静默覆盖"""
        orchestrator = BarrierOrchestrator(
            note_service=note_service,
            storage=storage,
            transcriber=TranscriptionAdapter(stt_provider=stt),
            structurer=ContentStructurer(llm_provider=llm),
            optimistic_writes=True
        )
        note, first, second = await self._prepare(note_service, storage)

        results = await asyncio.gather(
            orchestrator.run_text_pipeline(USER_ID, note.id, first),
            orchestrator.run_text_pipeline(USER_ID, note.id, second),
            return_exceptions=True
        )

        failures = [r for r in results if isinstance(r, PersistFailed)]
        successes = [r for r in results if not isinstance(r, Exception)]
        assert len(failures) == 1
        assert len(successes) == 1

        stored = await note_service.get_note(USER_ID, note.id)
        assert stored.content_text == successes[0].content_text
        assert stored.version == note.version + 1

    @pytest.mark.asyncio
    async def test_optimistic_mode_sequential_runs(self, note_service, storage, stt, llm):
        orchestrator = PipelineOrchestrator(
            note_service=note_service,
            storage=storage,
            transcriber=TranscriptionAdapter(stt_provider=stt),
            structurer=ContentStructurer(llm_provider=llm),
            optimistic_writes=True
        )
        note, first, second = await self._prepare(note_service, storage)

        await orchestrator.run_text_pipeline(USER_ID, note.id, first)
        await orchestrator.run_text_pipeline(USER_ID, note.id, second)

        stored = await note_service.get_note(USER_ID, note.id)
        assert stored.content_text == "base\n\nfrom A\n\nfrom B"


class TestCapturePipeline:
    """旧版单次采集测试"""

    @pytest.mark.asyncio
    async def test_audio_capture_creates_note(self, orchestrator, note_service, storage, llm):
        llm.responses = [json.dumps(VALID_OUTLINE)]
        await storage.upload(settings.audio_bucket, "cap.webm", WEBM_BYTES)
        capture = await note_service.create_capture(USER_ID, audio_path="cap.webm", mime_type="audio/webm")

        result = await orchestrator.process_capture(USER_ID, capture.id)

        note = await note_service.get_note(USER_ID, result.note_id)
        assert note.capture_id == capture.id
        assert note.title == "Weekly sync"
        assert note.content_text == "hello from the recording"
        assert note.tags == ["work"]
        transcript = await note_service.get_capture_transcript(capture.id)
        assert transcript.text == "hello from the recording"

    @pytest.mark.asyncio
    async def test_text_capture_creates_note(self, orchestrator, note_service, storage, llm):
        llm.responses = [json.dumps(VALID_OUTLINE)]
        await storage.upload(settings.notes_bucket, "cap.md", b"# meeting notes")
        capture = await note_service.create_capture(USER_ID, text_path="cap.md", mime_type="text/markdown")

        result = await orchestrator.process_capture(USER_ID, capture.id)

        assert result.transcribed is False
        note = await note_service.get_note(USER_ID, result.note_id)
        assert note.content_text == "# meeting notes"
        assert note.outline_json["title"] == "Weekly sync"

    @pytest.mark.asyncio
    async def test_persist_failure_recovers_from_transcript(
        self, orchestrator, note_service, storage, monkeypatch
    ):
        """写入失败时用已保存的转录生成 Processing Failed 笔记"""
        await storage.upload(settings.audio_bucket, "cap2.webm", WEBM_BYTES)
        capture = await note_service.create_capture(USER_ID, audio_path="cap2.webm")

        original = note_service.create_note_from_capture
        attempts = []

        async def flaky_create(*args, **kwargs):
            attempts.append(kwargs["title"])
            if len(attempts) == 1:
                raise PersistFailed("disk full")
            return await original(*args, **kwargs)

        monkeypatch.setattr(note_service, "create_note_from_capture", flaky_create)

        result = await orchestrator.process_capture(USER_ID, capture.id)

        assert attempts[1] == "Processing Failed"
        note = await note_service.get_note(USER_ID, result.note_id)
        assert note.title == "Processing Failed"
        assert note.editor_json["content"][0]["content"][0]["text"] == "Processing Failed"
        assert note.editor_json["content"][1]["content"][0]["text"] == "hello from the recording"
        assert note.outline_json["title"] == "Processing Failed"
        assert note.outline_json["highlights"] == []
        assert note.tags == []

    @pytest.mark.asyncio
    async def test_failure_without_text_raises_original_error(self, note_service, storage, llm):
        error = TranscriptionException("down", reason=TranscriptionFailureReason.UPSTREAM_UNAVAILABLE)
        orchestrator = PipelineOrchestrator(
            note_service=note_service,
            storage=storage,
            transcriber=TranscriptionAdapter(stt_provider=FakeSTTProvider(error=error)),
            structurer=ContentStructurer(llm_provider=llm)
        )
        await storage.upload(settings.audio_bucket, "cap3.webm", WEBM_BYTES)
        capture = await note_service.create_capture(USER_ID, audio_path="cap3.webm")

        with pytest.raises(TranscriptionException) as exc_info:
            await orchestrator.process_capture(USER_ID, capture.id)

        assert exc_info.value.reason == TranscriptionFailureReason.UPSTREAM_UNAVAILABLE
        assert await note_service.search_notes(USER_ID) == []

    @pytest.mark.asyncio
    async def test_missing_text_capture_raises_extraction_failed(self, orchestrator, note_service):
        capture = await note_service.create_capture(USER_ID, text_path="gone.txt")
        with pytest.raises(ExtractionFailed):
            await orchestrator.process_capture(USER_ID, capture.id)

    @pytest.mark.asyncio
    async def test_other_users_capture_not_found(self, orchestrator, note_service):
        capture = await note_service.create_capture(USER_ID, text_path="x.txt")
        with pytest.raises(NotFoundException):
            await orchestrator.process_capture(OTHER_USER_ID, capture.id)
