"""Error types shared by the server and client runtimes."""


class CompressorError(Exception):
    """Base class for page compressor errors."""


class InvalidInput(CompressorError):
    """Malformed URL or missing required field. Reported as a 400."""


class UpstreamFetchFailure(CompressorError):
    """Target site unreachable, timed out, or failed without a body."""


class ParseFailure(CompressorError):
    """The fetched bytes could not be turned into a document tree."""


class MessagingTimeout(CompressorError):
    """A background-store message was never answered."""
