from enum import Enum


class OutputFormat(str, Enum):
    MP3 = "mp3"
    WAV = "wav"
    AAC = "aac"
    AMR = "amr"
    M4A = "m4a"
    OGG = "ogg"  # compact default: mono 16 kHz opus in ogg
    GIF_MP4 = "gif_mp4"
    VIDEO_MP4 = "video_mp4"
    PNG = "png"

    @property
    def container(self) -> str:
        """The container name reported to clients and used as file extension."""
        return _CONTAINERS.get(self, self.value)

    @property
    def is_audio(self) -> bool:
        return self in AUDIO_FORMATS


class IOMode(str, Enum):
    PIPE = "pipe"
    TEMP_FILE = "temp_file"


_CONTAINERS = {
    OutputFormat.GIF_MP4: "mp4",
    OutputFormat.VIDEO_MP4: "mp4",
}

DEFAULT_OUTPUT_FORMAT = OutputFormat.OGG
DEFAULT_INPUT_FORMAT = "ogg"

AUDIO_FORMATS = frozenset(
    {
        OutputFormat.MP3,
        OutputFormat.WAV,
        OutputFormat.AAC,
        OutputFormat.AMR,
        OutputFormat.M4A,
        OutputFormat.OGG,
    }
)

# Containers whose muxer rewrites the index after encoding and cannot write to a pipe.
SEEKABLE_OUTPUT_FORMATS = frozenset(
    {
        OutputFormat.M4A,
        OutputFormat.GIF_MP4,
        OutputFormat.VIDEO_MP4,
    }
)

# Placeholders substituted with artifact paths in temp-file plans.
INPUT_PLACEHOLDER = "{input}"
OUTPUT_PLACEHOLDER = "{output}"

PIPE_INPUT = "pipe:0"
PIPE_OUTPUT = "pipe:1"
