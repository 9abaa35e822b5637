from __future__ import annotations

import os
from datetime import datetime
from typing import Callable, Protocol

from ..errors import ParameterError

IMAGE_EXTENSIONS = frozenset({'.jpg', '.jpeg', '.png', '.gif', '.bmp', '.webp', '.svg'})


class UploadPlacement(Protocol):
    name: str

    def place(self, target_dir: str, filename: str) -> str:
        """Return the root-relative path an uploaded part should be written to."""
        ...


def _join(target_dir: str, filename: str) -> str:
    if not filename:
        raise ParameterError('Missing file name')
    target_dir = target_dir.rstrip('/')
    return f'{target_dir}/{filename}' if target_dir else filename


class VerbatimTargetDirectory:
    """Every file lands in the requested directory under its original name."""

    name = 'verbatim'

    def place(self, target_dir: str, filename: str) -> str:
        return _join(target_dir, filename)


class TimestampedAssetBucket:
    """Images go to a fixed bucket named after the upload second; other files are placed verbatim.

    Two images with the same extension uploaded within the same second share a
    name, and the later one overwrites the earlier.
    """

    name = 'timestamped'

    def __init__(
        self,
        bucket: str = 'assert',
        extensions: frozenset[str] = IMAGE_EXTENSIONS,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.bucket = bucket.strip('/')
        self.extensions = extensions
        self.clock = clock

    def place(self, target_dir: str, filename: str) -> str:
        ext = os.path.splitext(filename)[1].lower()
        if ext not in self.extensions:
            return _join(target_dir, filename)
        return _join(self.bucket, self.clock().strftime('%Y%m%d_%H%M%S') + ext)


def placement_for(policy: str, bucket: str = 'assert') -> UploadPlacement:
    if policy == 'verbatim':
        return VerbatimTargetDirectory()
    if policy == 'timestamped':
        return TimestampedAssetBucket(bucket=bucket)
    raise ValueError(f'Unknown upload policy: {policy}')
