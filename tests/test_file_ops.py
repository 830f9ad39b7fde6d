"""
Tests for the file system tools.
"""

import pytest

from system import file_ops
from system.file_ops import (
    CopyFileTool,
    CreateDirectoryTool,
    DeleteFileTool,
    FileInfoTool,
    ListDirectoryTool,
    MoveFileTool,
    ReadFileTool,
    WriteFileTool,
    build_file_tools,
)


def test_write_then_read(tmp_path):
    target = tmp_path / "nested" / "note.txt"

    message = WriteFileTool().execute({"path": str(target), "content": "안녕 hello"})

    assert "bytes" in message
    assert ReadFileTool().execute({"path": str(target)}) == "안녕 hello"


def test_read_truncates_large_files(tmp_path, monkeypatch):
    monkeypatch.setattr(file_ops, "MAX_READ_BYTES", 10)
    target = tmp_path / "big.txt"
    target.write_text("0123456789abcdef", encoding="utf-8")

    text = ReadFileTool().execute({"path": str(target)})

    assert text == "0123456789\n...(truncated)"


def test_list_and_create_directories(tmp_path):
    CreateDirectoryTool().execute({"dirPath": str(tmp_path / "reports" / "2024")})
    (tmp_path / "a.txt").write_text("x", encoding="utf-8")

    listing = ListDirectoryTool().execute({"dirPath": str(tmp_path)})

    assert listing.splitlines() == ["[file] a.txt", "[dir] reports"]
    assert ListDirectoryTool().execute({"dirPath": str(tmp_path / "reports" / "2024")}) == "(empty directory)"
    with pytest.raises(NotADirectoryError):
        ListDirectoryTool().execute({"dirPath": str(tmp_path / "a.txt")})


def test_move_copy_delete(tmp_path):
    src = tmp_path / "a.txt"
    src.write_text("data", encoding="utf-8")

    CopyFileTool().execute({"sourcePath": str(src), "targetPath": str(tmp_path / "copy" / "b.txt")})
    MoveFileTool().execute({"sourcePath": str(src), "targetPath": str(tmp_path / "moved.txt")})
    DeleteFileTool().execute({"path": str(tmp_path / "copy" / "b.txt")})
    DeleteFileTool().execute({"path": str(tmp_path / "copy")})

    assert not src.exists()
    assert (tmp_path / "moved.txt").read_text(encoding="utf-8") == "data"
    assert not (tmp_path / "copy").exists()


def test_file_info(tmp_path):
    target = tmp_path / "a.txt"
    target.write_text("12345", encoding="utf-8")

    info = FileInfoTool().execute({"path": str(target)})

    assert "Type: file" in info
    assert "Size: 5 bytes" in info


def test_missing_required_argument():
    with pytest.raises(ValueError):
        ReadFileTool().execute({})
    with pytest.raises(ValueError):
        WriteFileTool().execute({"path": "/tmp/x.txt"})


def test_build_file_tools_names_are_unique():
    names = [tool.name for tool in build_file_tools()]

    assert len(names) == len(set(names)) == 8
