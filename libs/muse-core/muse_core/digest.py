"""Git blob digests: the content identity shared by local, remote and baseline."""

import hashlib


def git_blob_sha1(content: bytes | str) -> str:
    """
    Return the Git blob SHA-1 of ``content`` as lowercase hex.

    Matches ``git hash-object``: sha1(b"blob <len>\\0" + content). Text is
    encoded as UTF-8 first, so the length is the byte length.
    """
    if isinstance(content, str):
        content = content.encode("utf-8")
    header = f"blob {len(content)}\0".encode("ascii")
    return hashlib.sha1(header + content).hexdigest()
