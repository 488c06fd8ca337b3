# src/promoreel/utils/storage_paths.py

from __future__ import annotations

from uuid import UUID


def build_video_key(job_id: UUID | str) -> str:
    """
    Object key for a generated video:
    videos/{job_id}.mp4
    """
    return f"videos/{job_id}.mp4"


def build_video_filename(job_id: UUID | str) -> str:
    return f"{job_id}.mp4"
