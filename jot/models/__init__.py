"""
数据模型包
"""

from .capture import Capture
from .note import Note
from .audio_file import AudioFile
from .transcript import Transcript
from .text_input import TextInput

__all__ = [
    "Capture",
    "Note",
    "AudioFile",
    "Transcript",
    "TextInput"
]
