"""
Tests para el escaneo de la carpeta vigilada.
"""

import os

from remitbridge.shared.folder_scanner import is_eligible, list_eligible_files, scan_folder


def test_missing_folder_created(tmp_path):
    """Test: carpeta inexistente -> creada recursivamente, status created."""
    folder = tmp_path / "a" / "b"

    result = scan_folder(folder, ".RET")

    assert result.status == "created"
    assert result.files == []
    assert result.is_fault is False
    assert folder.is_dir()


def test_eligible_files_case_insensitive(tmp_path):
    """Test: solo archivos con la extensión (sin distinguir mayúsculas)."""
    (tmp_path / "A.RET").write_bytes(b"a")
    (tmp_path / "b.ret").write_bytes(b"b")
    (tmp_path / "c.Ret").write_bytes(b"c")
    (tmp_path / "d.txt").write_bytes(b"d")
    (tmp_path / "RET").write_bytes(b"e")
    (tmp_path / "sub.RET").mkdir()

    files = list_eligible_files(tmp_path, ".RET")

    assert sorted(os.path.basename(p) for p in files) == ["A.RET", "b.ret", "c.Ret"]
    assert all(os.path.isabs(p) for p in files)


def test_not_a_directory(tmp_path):
    path = tmp_path / "arquivo.RET"
    path.write_bytes(b"x")

    result = scan_folder(path, ".RET")

    assert result.status == "not_a_directory"
    assert result.is_fault is True


def test_permission_denied(tmp_path, monkeypatch):
    """Test: sin lectura/escritura -> permission_denied y lista vacía."""
    (tmp_path / "A.RET").write_bytes(b"a")
    monkeypatch.setattr("remitbridge.shared.folder_scanner.os.access", lambda *a, **k: False)

    result = scan_folder(tmp_path, ".RET")

    assert result.status == "permission_denied"
    assert result.files == []


def test_is_eligible():
    assert is_eligible("CB0101.RET", ".RET")
    assert is_eligible("cb0101.ret", ".RET")
    assert not is_eligible("CB0101.RET.bak", ".RET")
