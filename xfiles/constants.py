"""Module defining various global constants."""

# xfiles version
VERSION = "0.1.0"

# Version of the local index schema.
# The major version must match the one stored in an existing index database.
SCHEMA_VERSION = "1.0.0"

# Maximum number of bytes in a single post on the remote host.
MAX_SEGMENT = 280

# Number of replies requested per page when enumerating replies.
REPLY_PAGE_SIZE = 100

# Content types recorded on commits
DEFAULT_MIME = "application/octet-stream"
ROOT_MIME = "application/x-xfiles-root"
TOMBSTONE_MIME = "application/x-xfiles-tombstone"

# Payloads posted for file roots and deletions
ROOT_PAYLOAD = b""
TOMBSTONE_PAYLOAD = b"[deleted]"

# Author recorded for adopted commits when the remote host doesn't report one
UNKNOWN_AUTHOR = "unknown"
