"""
音频格式工具函数

浏览器（尤其是Safari）声明的MIME类型经常与实际容器不符，
因此转录前以文件头为准确定真实格式。
"""

from pathlib import Path
from typing import Optional

DEFAULT_AUDIO_MIME = "audio/webm"
DEFAULT_TEXT_MIME = "text/plain"

# 扩展名 -> MIME类型
AUDIO_MIME_BY_EXTENSION = {
    "webm": "audio/webm",
    "m4a": "audio/m4a",
    "mp4": "audio/mp4",
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "flac": "audio/flac",
    "ogg": "audio/ogg",
    "oga": "audio/ogg",
}

TEXT_MIME_BY_EXTENSION = {
    "txt": "text/plain",
    "md": "text/markdown",
    "markdown": "text/markdown",
}

# ftyp 品牌中表示纯音频的部分
_M4A_BRANDS = (b"M4A ", b"M4B ")


def sniff_audio_mime(data: bytes) -> Optional[str]:
    """
    根据文件头识别音频容器

    Args:
        data: 音频字节（只需要前几十个字节）

    Returns:
        Optional[str]: 识别出的MIME类型，无法识别时返回None
    """
    if len(data) < 4:
        return None

    # EBML (Matroska/WebM)
    if data[:4] == b"\x1a\x45\xdf\xa3":
        return "audio/webm"

    # ISO BMFF: 4字节长度 + ftyp + 品牌
    if len(data) >= 12 and data[4:8] == b"ftyp":
        if data[8:12] in _M4A_BRANDS:
            return "audio/m4a"
        return "audio/mp4"

    # WAV文件头: RIFF + 4字节 + WAVE
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WAVE":
        return "audio/wav"

    # MP3: ID3 或 同步帧
    if data[:3] == b"ID3" or (data[0] == 0xFF and (data[1] & 0xE0) == 0xE0):
        return "audio/mpeg"

    if data[:4] == b"fLaC":
        return "audio/flac"

    if data[:4] == b"OggS":
        return "audio/ogg"

    return None


def resolve_audio_mime(data: bytes, declared_mime: Optional[str] = None) -> str:
    """
    确定音频的真实MIME类型

    文件头可识别时以文件头为准，否则使用声明的类型，都没有时默认 audio/webm。
    """
    sniffed = sniff_audio_mime(data)
    if sniffed:
        return sniffed
    if declared_mime:
        return declared_mime.split(";")[0].strip().lower()
    return DEFAULT_AUDIO_MIME


def mime_to_extension(mime_type: str) -> str:
    """MIME类型的子类型即为扩展名，如 audio/webm -> webm"""
    subtype = mime_type.split(";")[0].split("/")[-1].strip().lower()
    return subtype or "webm"


def guess_audio_mime_from_path(path: str) -> str:
    """根据存储路径扩展名猜测音频类型"""
    extension = Path(path).suffix.lower().lstrip(".")
    return AUDIO_MIME_BY_EXTENSION.get(extension, DEFAULT_AUDIO_MIME)


def guess_text_mime_from_path(path: str) -> str:
    """根据存储路径扩展名猜测文本类型"""
    extension = Path(path).suffix.lower().lstrip(".")
    return TEXT_MIME_BY_EXTENSION.get(extension, DEFAULT_TEXT_MIME)


def is_text_mime(mime_type: Optional[str]) -> bool:
    return bool(mime_type) and mime_type.startswith("text/")


def is_text_path(path: str) -> bool:
    """存储键的扩展名是否为文本类型"""
    return Path(path).suffix.lower().lstrip(".") in TEXT_MIME_BY_EXTENSION
