"""
转录服务
"""

from typing import Optional

from jot.config import settings
from jot.core.exceptions import TranscriptionException, TranscriptionFailureReason
from jot.core.logging import audio_logger
from jot.services.ai.ai_service import get_ai_service
from jot.services.ai.base import STTProvider, TranscriptionResult
from jot.utils.audio_utils import mime_to_extension, resolve_audio_mime
from jot.utils.file_utils import staged_file


class TranscriptionAdapter:
    """
    音频转录适配器

    负责大小检查、真实格式识别和临时文件管理，实际转录交给STT提供商。
    不做重试：失败时抛出带分类的 TranscriptionException。
    """

    def __init__(self, stt_provider: Optional[STTProvider] = None, max_bytes: Optional[int] = None):
        self._stt_provider = stt_provider
        self.max_bytes = max_bytes or settings.max_audio_bytes

    @property
    def stt_provider(self) -> STTProvider:
        if self._stt_provider is None:
            self._stt_provider = get_ai_service().stt_provider
        return self._stt_provider

    async def transcribe(self, data: bytes, declared_mime: Optional[str] = None) -> TranscriptionResult:
        """
        转录音频字节

        Args:
            data: 音频内容
            declared_mime: 客户端声明的MIME类型，可能与实际容器不符

        Returns:
            TranscriptionResult: 文本及分段时间戳

        Raises:
            TranscriptionException: 音频过大、为空或上游失败
        """
        if len(data) > self.max_bytes:
            audio_logger.warning(f"音频超过大小上限: {len(data)} > {self.max_bytes}")
            raise TranscriptionException(
                f"Audio exceeds {self.max_bytes} bytes",
                reason=TranscriptionFailureReason.TOO_LARGE
            )
        if not data:
            raise TranscriptionException(
                "Audio file is empty",
                reason=TranscriptionFailureReason.INVALID_FORMAT
            )

        mime_type = resolve_audio_mime(data, declared_mime)
        if declared_mime and mime_type != declared_mime:
            audio_logger.info(f"声明类型 {declared_mime} 与实际容器 {mime_type} 不符，按实际容器处理")

        filename = f"audio.{mime_to_extension(mime_type)}"
        async with staged_file(data, filename) as path:
            try:
                result = await self.stt_provider.transcribe_audio(path)
            except TranscriptionException:
                raise
            except Exception as e:
                audio_logger.error(f"转录出现未分类错误: {e}")
                raise TranscriptionException(f"Transcription failed: {e}") from e

        audio_logger.info(
            f"转录完成: {len(data)} bytes, {mime_type}, "
            f"{len(result.text)} chars, {len(result.segments)} segments"
        )
        return result
