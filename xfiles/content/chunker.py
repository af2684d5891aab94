"""Module that splits payloads into segments that fit in a single post."""

from typing import Iterable, List

import xfiles.constants as constants


class Chunker:
    """
    Splitting and recombination of payloads for a host with a maximum post size.

    Segments are consecutive slices of the payload in order, so recombining them is a
    simple concatenation. A payload that fits in a single post is never split, which
    includes the empty payload.

    UTF-8 text can be split on character boundaries instead, so that every segment is
    valid text on its own. Such segments may be a few bytes shorter than max_segment.
    """

    def __init__(self, max_segment: int = constants.MAX_SEGMENT) -> None:
        """Instantiate a chunker for posts of at most max_segment bytes."""
        if max_segment < 1:
            raise ValueError(f"invalid segment size {max_segment}")

        self.max_segment = max_segment

    def chunk(self, content: bytes, text: bool = False) -> List[bytes]:
        """
        Split content into segments of at most max_segment bytes.

        If text is set then the content must be valid UTF-8 and no character is split
        across segments.
        """
        if len(content) <= self.max_segment:
            return [bytes(content)]

        if text:
            return self._chunk_text(content)

        return [
            bytes(content[offset : offset + self.max_segment])
            for offset in range(0, len(content), self.max_segment)
        ]

    @staticmethod
    def recombine(segments: Iterable[bytes]) -> bytes:
        """Reassemble the original content from its segments."""
        return b"".join(segments)

    def _chunk_text(self, content: bytes) -> List[bytes]:
        """Split UTF-8 text into segments that each end on a character boundary."""
        segments: List[bytes] = []
        offset = 0

        while offset < len(content):
            end = min(offset + self.max_segment, len(content))

            # Continuation bytes of a multi-byte character look like 0b10xxxxxx
            while end < len(content) and content[end] & 0xC0 == 0x80:
                end -= 1

            if end == offset:
                raise ValueError(
                    f"segment size {self.max_segment} is too small for the "
                    f"character at {offset}"
                )

            segments.append(bytes(content[offset:end]))
            offset = end

        return segments
