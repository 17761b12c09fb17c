"""Tests for the BucketFS adapter and its file handles."""

import os

import pytest
from conftest import BUCKET, MTIME

from s3www.filesystem import DirectoryHandle, ObjectHandle


class TestOpen:
    """Tests for BucketFS.open()."""

    async def test_root_is_directory(self, fs, store):
        handle = await fs.open("/")
        assert isinstance(handle, DirectoryHandle)
        assert handle.is_dir
        assert store.list_calls == []

    async def test_directory_prefix_strips_trailing_separator(self, fs):
        handle = await fs.open("/blog/")
        assert isinstance(handle, DirectoryHandle)
        assert handle.prefix == "/blog"
        assert handle.bucket == BUCKET

    async def test_directory_enumerates_empty(self, fs):
        handle = await fs.open("/blog")
        assert await handle.readdir() == []
        assert await handle.readdir(10) == []

    async def test_directory_stat(self, fs):
        handle = await fs.open("/blog/2024/")
        info = handle.stat()
        assert info.is_dir
        assert info.name == "2024"
        assert info.size == 0

    async def test_directory_cannot_be_read(self, fs):
        handle = await fs.open("/blog")
        with pytest.raises(IsADirectoryError):
            await handle.read()
        with pytest.raises(IsADirectoryError):
            handle.seek(0)

    async def test_object(self, fs):
        handle = await fs.open("/hello.txt")
        assert isinstance(handle, ObjectHandle)
        assert not handle.is_dir
        assert handle.key == "hello.txt"

    async def test_object_stat(self, fs):
        handle = await fs.open("/hello.txt")
        info = handle.stat()
        assert info.name == "hello.txt"
        assert info.size == 11
        assert info.modified == MTIME
        assert info.etag.startswith('"')
        assert info.content_type == "text/plain"
        assert not info.is_dir

    async def test_object_is_not_a_directory(self, fs):
        handle = await fs.open("/hello.txt")
        with pytest.raises(NotADirectoryError):
            await handle.readdir()

    async def test_missing_resolves_to_not_found_document(self, fs):
        handle = await fs.open("/blog/missing")
        assert isinstance(handle, ObjectHandle)
        assert handle.is_not_found_document
        assert handle.key == "404.html"

    async def test_missing_without_document_raises(self, fs, store):
        store.remove(BUCKET, "404.html")
        with pytest.raises(FileNotFoundError):
            await fs.open("/blog/missing")


class TestObjectHandleIO:
    """Tests for ObjectHandle read/seek/stream."""

    async def test_read_all(self, fs):
        handle = await fs.open("/hello.txt")
        assert await handle.read() == b"hello world"
        assert await handle.read() == b""

    async def test_read_in_pieces(self, fs):
        handle = await fs.open("/hello.txt")
        assert await handle.read(5) == b"hello"
        assert await handle.read(100) == b" world"
        assert await handle.read(1) == b""

    async def test_seek(self, fs):
        handle = await fs.open("/hello.txt")
        assert handle.seek(6) == 6
        assert await handle.read(5) == b"world"
        assert handle.seek(-5, os.SEEK_END) == 6
        assert handle.seek(-1, os.SEEK_CUR) == 5
        assert await handle.read(1) == b" "

    async def test_seek_negative_raises(self, fs):
        handle = await fs.open("/hello.txt")
        with pytest.raises(ValueError):
            handle.seek(-1)
        with pytest.raises(ValueError):
            handle.seek(0, 7)

    async def test_seek_past_end_reads_nothing(self, fs):
        handle = await fs.open("/hello.txt")
        handle.seek(100)
        assert await handle.read() == b""

    async def test_stream_from_position(self, fs):
        handle = await fs.open("/hello.txt")
        handle.seek(6)
        chunks = [c async for c in handle.stream(3)]
        assert b"".join(chunks) == b"wor"
        assert await handle.read() == b"ld"

    async def test_large_object_streams_in_chunks(self, fs, store):
        data = bytes(range(256)) * 1024
        store.put(BUCKET, "big.bin", data)
        handle = await fs.open("/big.bin")
        chunks = [c async for c in handle.stream()]
        assert len(chunks) == 4
        assert b"".join(chunks) == data
