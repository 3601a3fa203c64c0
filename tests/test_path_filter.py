"""Tests for candidate file discovery."""

from __future__ import annotations

from pathlib import Path

from dxfix.path_filter import discover_files, matches_extension


def _touch(path: Path, content: str = "") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


class TestMatchesExtension:
    """Tests for matches_extension."""

    def test_simple_extension(self) -> None:
        """Test a plain suffix."""
        assert matches_extension(Path("a.ts"), [".ts"])
        assert not matches_extension(Path("a.tsx"), [".ts"])

    def test_compound_extension(self) -> None:
        """Test suffixes such as .test.ts."""
        assert matches_extension(Path("user.test.ts"), [".test.ts"])
        assert not matches_extension(Path("user.ts"), [".test.ts"])


class TestDiscoverFiles:
    """Tests for discover_files."""

    def test_finds_matching_files_sorted(self, tmp_path: Path) -> None:
        """Test recursive discovery, sorted."""
        b = _touch(tmp_path / "src" / "b.ts")
        a = _touch(tmp_path / "src" / "nested" / "a.ts")
        _touch(tmp_path / "src" / "readme.md")

        assert discover_files(tmp_path, [".ts"]) == sorted([a.resolve(), b.resolve()])

    def test_skips_ignored_dirs(self, tmp_path: Path) -> None:
        """Test that dependency and build directories are excluded."""
        kept = _touch(tmp_path / "src" / "app.ts")
        _touch(tmp_path / "node_modules" / "lib" / "index.ts")
        _touch(tmp_path / "dist" / "app.ts")
        _touch(tmp_path / "src" / ".git" / "hook.ts")

        assert discover_files(tmp_path, [".ts"]) == [kept.resolve()]

    def test_custom_exclude_dirs(self, tmp_path: Path) -> None:
        """Test an explicit exclude list replaces the default."""
        _touch(tmp_path / "generated" / "api.ts")
        in_dist = _touch(tmp_path / "dist" / "app.ts")

        assert discover_files(tmp_path, [".ts"], ["generated"]) == [in_dist.resolve()]

    def test_ignored_name_in_target_path_is_fine(self, tmp_path: Path) -> None:
        """Test that only components below the target are checked."""
        target = tmp_path / "build" / "project"
        kept = _touch(target / "a.ts")

        assert discover_files(target, [".ts"]) == [kept.resolve()]

    def test_single_file_target(self, tmp_path: Path) -> None:
        """Test a target that is a file."""
        file_path = _touch(tmp_path / "one.ts")
        assert discover_files(file_path, [".ts"]) == [file_path.resolve()]
        assert discover_files(file_path, [".tsx"]) == []

    def test_multiple_extensions(self, tmp_path: Path) -> None:
        """Test several extensions at once."""
        ts = _touch(tmp_path / "a.ts")
        tsx = _touch(tmp_path / "b.tsx")
        _touch(tmp_path / "c.js")

        assert discover_files(tmp_path, [".ts", ".tsx"]) == sorted([ts.resolve(), tsx.resolve()])
