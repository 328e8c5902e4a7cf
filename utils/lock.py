import os
import sys
import logging
import atexit
import errno
import tempfile
from typing import Dict, Optional, TextIO

from utils.helpers import safe_file_token

if sys.platform == 'win32':
    import msvcrt
else:
    import fcntl

logger = logging.getLogger(__name__)
LOCK_FILE_HANDLES: Dict[str, TextIO] = {}

def channel_lock_path(prefix: str, channel_target: str, lock_dir: Optional[str] = None) -> str:
    """
    Returns the lock file path guarding one serial port or TCP bridge.

    Two runners pointed at the same port get the same path, so only one of
    them can own the half-duplex line at a time.
    """
    directory = lock_dir or tempfile.gettempdir()
    return os.path.join(directory, f"{prefix}_{safe_file_token(channel_target)}.lock")

def acquire_lock(lock_file_path: str) -> bool:
    """
    Acquires an exclusive file lock for the channel described by the path.

    Uses fcntl on Unix and msvcrt on Windows and registers cleanup on exit.
    Acquiring a path this process already holds succeeds immediately.

    Args:
        lock_file_path: Path to the lock file to create/acquire

    Returns:
        True if lock was successfully acquired, False if another runner owns the channel
    """
    if lock_file_path in LOCK_FILE_HANDLES:
        return True
    handle = None
    try:
        handle = open(lock_file_path, 'a+', buffering=1)
        if sys.platform == 'win32':
            handle.seek(0)
            msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)
        else:
            fcntl.lockf(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)

        handle.seek(0)
        handle.truncate()
        handle.write(str(os.getpid()))
        handle.flush()
        if not LOCK_FILE_HANDLES:
            atexit.register(cleanup_lock_file)
        LOCK_FILE_HANDLES[lock_file_path] = handle
        logger.info(f"Successfully acquired channel lock: {lock_file_path}")
        return True
    except OSError as e:
        is_locked = (sys.platform != 'win32' and e.errno in (errno.EACCES, errno.EAGAIN)) or \
                      (sys.platform == 'win32' and (e.errno == errno.EACCES or 'locked' in str(e).lower()))
        if is_locked:
            logger.error(f"Channel is already in use by another runner (lock file: {lock_file_path}).")
        else:
            logger.critical(f"Could not create or lock file '{lock_file_path}': {e}. Check permissions.")
        if handle:
            handle.close()
        return False

def cleanup_lock_file() -> None:
    """
    Releases all channel locks and removes their lock files.

    Called automatically on exit via atexit; safe to call more than once.
    """
    for lock_file_path, handle in list(LOCK_FILE_HANDLES.items()):
        try:
            if sys.platform == 'win32':
                handle.seek(0)
                msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)
            else:
                fcntl.lockf(handle, fcntl.LOCK_UN)
            handle.close()
            try:
                os.remove(lock_file_path)
                logger.info(f"Lock file {lock_file_path} cleaned up.")
            except OSError:
                pass
        except OSError as e:
            logger.warning(f"Could not cleanly release lock file {lock_file_path}: {e}")
        finally:
            LOCK_FILE_HANDLES.pop(lock_file_path, None)
