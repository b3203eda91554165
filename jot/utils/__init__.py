"""
工具函数包
"""

from .audio_utils import (
    sniff_audio_mime,
    resolve_audio_mime,
    mime_to_extension,
    guess_audio_mime_from_path,
    guess_text_mime_from_path,
    is_text_mime
)

from .file_utils import (
    sanitize_filename,
    generate_storage_key,
    strip_bucket_prefix,
    staged_file
)

__all__ = [
    "sniff_audio_mime",
    "resolve_audio_mime",
    "mime_to_extension",
    "guess_audio_mime_from_path",
    "guess_text_mime_from_path",
    "is_text_mime",
    "sanitize_filename",
    "generate_storage_key",
    "strip_bucket_prefix",
    "staged_file"
]
