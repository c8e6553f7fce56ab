"""
Storage configuration and security settings for chat attachments.
"""
import os
from typing import Set

# Size limits
MAX_UPLOAD_SIZE = int(os.environ.get('MAX_UPLOAD_SIZE', 10 * 1024 * 1024))  # 10MB default
MAX_ATTACHMENTS_PER_MESSAGE = int(os.environ.get('MAX_ATTACHMENTS_PER_MESSAGE', 10))

# File type restrictions - Blacklist approach
BLOCKED_EXTENSIONS: Set[str] = {
    # Executables
    '.exe', '.dll', '.so', '.dylib', '.com', '.scr', '.pif',
    '.dmg', '.app', '.deb', '.rpm', '.apk',
    # Scripts that could be dangerous when executed directly
    '.vbs', '.vbe', '.wsf', '.wsh', '.msi', '.msp', '.mst',
    # Office files with macros
    '.docm', '.xlsm', '.pptm', '.potm', '.xlam', '.ppsm', '.sldm',
    # Other potentially dangerous
    '.hta', '.cpl', '.msc', '.jar', '.jnlp',
    '.cmd', '.reg', '.lnk', '.inf',
    '.sys', '.drv',
}

MAX_FILENAME_LENGTH = 100


def format_bytes(bytes_size: int) -> str:
    """Format bytes to human readable string"""
    for unit in ['B', 'KB', 'MB', 'GB']:
        if bytes_size < 1024.0:
            return f"{bytes_size:.2f} {unit}"
        bytes_size /= 1024.0
    return f"{bytes_size:.2f} TB"
