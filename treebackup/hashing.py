import hashlib
from pathlib import Path
from typing import Union

from .errors import UnreadableFile


# Read buffer for hashing and copying; only bounds memory use
CHUNK_SIZE = 16 * 1024


def hash_file_content(file_path: Union[str, Path]) -> str:
    """
    Generate an MD5 hash for a file's content.

    The file is streamed in CHUNK_SIZE blocks, so files of any size can be
    hashed without loading them into memory.

    Args:
        file_path: Path of the file to hash

    Returns:
        str: Lowercase hex digest (32 characters)

    Raises:
        UnreadableFile: If the file cannot be opened or read
    """
    md5 = hashlib.md5()
    try:
        with open(file_path, 'rb') as f:
            for chunk in iter(lambda: f.read(CHUNK_SIZE), b''):
                md5.update(chunk)
    except OSError as e:
        raise UnreadableFile(f"Cannot read file '{file_path}': {e}", path=str(file_path)) from e
    return md5.hexdigest()
