"""Tests for reef.core.links."""

import os
import shutil

import pytest

from reef.core import links
from reef.core.errors import (
    AlreadyLinkedError,
    ConflictError,
    NotFoundError,
    PartialFailureError,
    PermissionDeniedError,
    UsageError,
)
from reef.core.integrity import scan
from reef.core.links import LinkManager, resolve_relative
from reef.core.locator import detect
from reef.core.models import LinkState, OutcomeStatus


def _link_set(root):
    found = []
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            path = os.path.join(dirpath, name)
            if os.path.islink(path):
                found.append((path, os.readlink(path)))
    return sorted(found)


class TestResolveRelative:
    def test_relative_is_normalized(self, pair):
        assert resolve_relative(pair, "src/./a.js") == os.path.join("src", "a.js")

    def test_absolute_under_base(self, pair, project):
        assert resolve_relative(pair, str(project / "src" / "a.js")) == os.path.join("src", "a.js")

    def test_absolute_under_twin(self, pair, sibling_twin):
        assert resolve_relative(pair, str(sibling_twin / "notes.md")) == "notes.md"

    @pytest.mark.parametrize("raw", ["", ".", "..", "../other/file"])
    def test_rejects_escapes(self, pair, raw):
        with pytest.raises(UsageError):
            resolve_relative(pair, raw)

    def test_rejects_outside_absolute(self, pair, tmp_path):
        with pytest.raises(UsageError):
            resolve_relative(pair, str(tmp_path))

    def test_absolute_with_trailing_slash(self, pair, project):
        assert resolve_relative(pair, str(project / "src") + os.sep) == "src"

    def test_absolute_twin_dir_with_trailing_slash(self, pair, sibling_twin):
        (sibling_twin / "cache").mkdir()
        assert resolve_relative(pair, str(sibling_twin / "cache") + os.sep) == "cache"


class TestKick:
    def test_moves_file_and_links(self, pair, project, sibling_twin):
        outcome = LinkManager(pair).kick("src/a.js")

        moved = sibling_twin / "src" / "a.js"
        link = project / "src" / "a.js"
        assert outcome.status is OutcomeStatus.DONE
        assert moved.read_text() == "console.log('a')\n"
        assert not moved.is_symlink()
        assert link.is_symlink()
        assert os.readlink(link) == str(moved)
        assert link.read_text() == "console.log('a')\n"

    def test_directory(self, pair, project, sibling_twin):
        LinkManager(pair).kick("data")
        assert (sibling_twin / "data" / "big.csv").is_file()
        assert (project / "data").is_symlink()
        assert (project / "data" / "big.csv").read_text() == "x,y\n1,2\n"

    def test_missing_source(self, pair):
        with pytest.raises(NotFoundError):
            LinkManager(pair).kick("nope.txt")

    def test_already_linked(self, pair):
        manager = LinkManager(pair)
        manager.kick("notes.md")
        with pytest.raises(AlreadyLinkedError):
            manager.kick("notes.md")

    def test_twin_occupied(self, pair, sibling_twin):
        (sibling_twin / "notes.md").write_text("other")
        with pytest.raises(ConflictError):
            LinkManager(pair).kick("notes.md")
        assert (sibling_twin / "notes.md").read_text() == "other"

    def test_creates_twin_when_confirmed(self, project, home):
        pair = detect(project, "-reef", home=home)
        prompts = []

        def confirm(prompt):
            prompts.append(prompt)
            return True

        LinkManager(pair, confirm=confirm).kick("notes.md")
        assert len(prompts) == 1
        assert pair.twin_path in prompts[0]
        assert os.path.isfile(os.path.join(pair.twin_path, "notes.md"))

    def test_refused_twin_creation(self, project, home):
        pair = detect(project, "-reef", home=home)
        with pytest.raises(UsageError):
            LinkManager(pair, confirm=lambda prompt: False).kick("notes.md")
        assert not os.path.exists(pair.twin_path)
        assert (project / "notes.md").is_file()

    def test_no_confirm_capability(self, project, home):
        pair = detect(project, "-reef", home=home)
        with pytest.raises(UsageError):
            LinkManager(pair).kick("notes.md")

    def test_rollback_when_link_fails(self, pair, project, sibling_twin, monkeypatch):
        def broken_symlink(src, dst):
            raise PermissionError(13, "Permission denied", dst)

        monkeypatch.setattr(links.os, "symlink", broken_symlink)
        with pytest.raises(PartialFailureError) as exc:
            LinkManager(pair).kick("notes.md")

        assert exc.value.rollback_error is None
        assert (project / "notes.md").read_text() == "# notes\n"
        assert not (project / "notes.md").is_symlink()
        assert not (sibling_twin / "notes.md").exists()

    def test_rollback_failure_reports_both(self, pair, sibling_twin, monkeypatch):
        def broken_symlink(src, dst):
            raise OSError(5, "I/O error")

        real_move = shutil.move
        calls = []

        def move_once(src, dst):
            calls.append((src, dst))
            if len(calls) > 1:
                raise OSError(28, "No space left on device")
            return real_move(src, dst)

        monkeypatch.setattr(links.os, "symlink", broken_symlink)
        monkeypatch.setattr(links.shutil, "move", move_once)
        with pytest.raises(PartialFailureError) as exc:
            LinkManager(pair).kick("notes.md")

        assert exc.value.rollback_error is not None
        assert "I/O error" in str(exc.value)
        assert "No space left" in str(exc.value)
        assert (sibling_twin / "notes.md").is_file()

    def test_directory_with_trailing_slash(self, pair, project, sibling_twin):
        LinkManager(pair).kick(str(project / "data") + os.sep)
        assert (project / "data").is_symlink()
        assert (sibling_twin / "data" / "big.csv").is_file()

    def test_permission_denied_leaves_source(self, pair, project, sibling_twin, monkeypatch):
        def deny(src, dst):
            raise PermissionError(13, "Permission denied", src)

        monkeypatch.setattr(links.shutil, "move", deny)
        with pytest.raises(PermissionDeniedError):
            LinkManager(pair).kick("notes.md")

        assert (project / "notes.md").read_text() == "# notes\n"
        assert not (project / "notes.md").is_symlink()
        assert not (sibling_twin / "notes.md").exists()


class TestRecall:
    def test_round_trip(self, pair, project, sibling_twin):
        manager = LinkManager(pair)
        manager.kick("src/a.js")
        outcome = manager.recall("src/a.js")

        a = project / "src" / "a.js"
        assert outcome.status is OutcomeStatus.DONE
        assert not a.is_symlink()
        assert a.read_text() == "console.log('a')\n"
        assert not (sibling_twin / "src" / "a.js").exists()

    def test_prunes_empty_twin_dirs(self, pair, sibling_twin):
        manager = LinkManager(pair)
        manager.kick("src/a.js")
        manager.recall("src/a.js")
        assert not (sibling_twin / "src").exists()
        assert sibling_twin.is_dir()

    def test_keeps_non_empty_twin_dirs(self, pair, project, sibling_twin):
        (project / "src" / "b.js").write_text("b")
        manager = LinkManager(pair)
        manager.kick("src/a.js")
        manager.kick("src/b.js")
        manager.recall("src/a.js")
        assert (sibling_twin / "src" / "b.js").is_file()

    def test_directory_round_trip(self, pair, project, sibling_twin):
        manager = LinkManager(pair)
        manager.kick("data")
        manager.recall("data")
        assert (project / "data").is_dir()
        assert not (project / "data").is_symlink()
        assert (project / "data" / "big.csv").read_text() == "x,y\n1,2\n"
        assert not (sibling_twin / "data").exists()

    def test_not_a_symlink(self, pair):
        with pytest.raises(NotFoundError):
            LinkManager(pair).recall("notes.md")

    def test_missing(self, pair):
        with pytest.raises(NotFoundError):
            LinkManager(pair).recall("nope.md")

    def test_link_outside_twin(self, pair, project, tmp_path):
        elsewhere = tmp_path / "elsewhere.txt"
        elsewhere.write_text("x")
        (project / "ext.txt").symlink_to(elsewhere)
        with pytest.raises(NotFoundError):
            LinkManager(pair).recall("ext.txt")
        assert (project / "ext.txt").is_symlink()

    def test_unresolvable_target(self, pair, project):
        (project / "gone.txt").symlink_to(project.parent / "proj-reef" / "gone.txt")
        with pytest.raises(NotFoundError):
            LinkManager(pair).recall("gone.txt")

    def test_recall_after_twin_relocation(self, project, sibling_twin, home):
        LinkManager(detect(project, "-reef", home=home)).kick("notes.md")
        store = home / ".reef"
        store.mkdir()
        shutil.move(str(sibling_twin), str(store / "proj-reef"))

        pair = detect(project, "-reef", home=home)
        LinkManager(pair).recall("notes.md")
        assert (project / "notes.md").read_text() == "# notes\n"
        assert not (project / "notes.md").is_symlink()
        assert not (store / "proj-reef" / "notes.md").exists()

    def test_directory_with_trailing_slash(self, pair, project, sibling_twin):
        manager = LinkManager(pair)
        manager.kick("data")
        manager.recall(str(project / "data") + os.sep)
        assert (project / "data").is_dir()
        assert not (project / "data").is_symlink()
        assert (project / "data" / "big.csv").read_text() == "x,y\n1,2\n"

    def test_permission_denied_on_move_restores_link(
        self, pair, project, sibling_twin, monkeypatch
    ):
        manager = LinkManager(pair)
        manager.kick("notes.md")
        recorded = os.readlink(project / "notes.md")

        def deny(src, dst):
            raise PermissionError(13, "Permission denied", src)

        monkeypatch.setattr(links.shutil, "move", deny)
        with pytest.raises(PermissionDeniedError):
            manager.recall("notes.md")

        assert os.readlink(project / "notes.md") == recorded
        assert (sibling_twin / "notes.md").read_text() == "# notes\n"

    def test_permission_denied_on_unlink(self, pair, project, sibling_twin, monkeypatch):
        manager = LinkManager(pair)
        manager.kick("notes.md")

        def deny(path):
            raise PermissionError(13, "Permission denied", path)

        monkeypatch.setattr(links.os, "unlink", deny)
        with pytest.raises(PermissionDeniedError):
            manager.recall("notes.md")
        monkeypatch.undo()

        assert (project / "notes.md").is_symlink()
        assert (sibling_twin / "notes.md").is_file()


class TestPlug:
    def test_links_every_twin_entry(self, pair, project, sibling_twin):
        (sibling_twin / "secret.env").write_text("KEY=1")
        (sibling_twin / "src").mkdir()
        (sibling_twin / "src" / "local.js").write_text("l")
        (sibling_twin / "cache").mkdir()
        (sibling_twin / "cache" / "blob").write_text("b")

        report = LinkManager(pair).plug()

        assert report.ok
        assert os.readlink(project / "secret.env") == str(sibling_twin / "secret.env")
        assert os.readlink(project / "src" / "local.js") == str(sibling_twin / "src" / "local.js")
        # missing directory is linked as a whole
        assert os.readlink(project / "cache") == str(sibling_twin / "cache")
        assert not (project / "src").is_symlink()

    def test_idempotent(self, pair, project, sibling_twin):
        (sibling_twin / "secret.env").write_text("KEY=1")
        manager = LinkManager(pair)
        first = manager.plug()
        links_after_first = _link_set(project)
        second = manager.plug()
        links_after_second = _link_set(project)

        assert first.count(OutcomeStatus.DONE) == 1
        assert second.count(OutcomeStatus.DONE) == 0
        assert second.count(OutcomeStatus.SKIPPED) == 1
        assert links_after_first == links_after_second

    def test_conflict_is_never_overwritten(self, pair, project, sibling_twin):
        (sibling_twin / "notes.md").write_text("twin copy")
        report = LinkManager(pair).plug()

        assert not report.ok
        assert report.count(OutcomeStatus.CONFLICT) == 1
        assert (project / "notes.md").read_text() == "# notes\n"
        assert not (project / "notes.md").is_symlink()

    def test_continues_past_conflicts(self, pair, project, sibling_twin):
        (sibling_twin / "notes.md").write_text("twin copy")
        (sibling_twin / "zzz.txt").write_text("z")
        report = LinkManager(pair).plug()
        assert report.count(OutcomeStatus.CONFLICT) == 1
        assert (project / "zzz.txt").is_symlink()

    def test_symlink_elsewhere_is_conflict(self, pair, project, sibling_twin, tmp_path):
        other = tmp_path / "other.txt"
        other.write_text("o")
        (project / "cfg.txt").symlink_to(other)
        (sibling_twin / "cfg.txt").write_text("c")
        report = LinkManager(pair).plug()
        assert report.count(OutcomeStatus.CONFLICT) == 1
        assert os.readlink(project / "cfg.txt") == str(other)

    def test_relinks_stale_link_to_same_entry(self, project, sibling_twin, home):
        LinkManager(detect(project, "-reef", home=home)).kick("notes.md")
        store = home / ".reef"
        store.mkdir()
        shutil.move(str(sibling_twin), str(store / "proj-reef"))

        report = LinkManager(detect(project, "-reef", home=home)).plug()
        assert report.ok
        assert os.readlink(project / "notes.md") == str(store / "proj-reef" / "notes.md")

    def test_missing_twin(self, project, home):
        with pytest.raises(NotFoundError):
            LinkManager(detect(project, "-reef", home=home)).plug()


class TestUnplug:
    def test_removes_only_twin_links(self, pair, project, sibling_twin, tmp_path):
        manager = LinkManager(pair)
        manager.kick("notes.md")
        manager.kick("src/a.js")
        other = tmp_path / "other.txt"
        other.write_text("o")
        (project / "ext.txt").symlink_to(other)

        report = manager.unplug()

        assert report.ok
        assert report.count(OutcomeStatus.DONE) == 2
        assert not os.path.lexists(project / "notes.md")
        assert not os.path.lexists(project / "src" / "a.js")
        assert (sibling_twin / "notes.md").read_text() == "# notes\n"
        assert (sibling_twin / "src" / "a.js").is_file()
        assert (project / "ext.txt").is_symlink()

    def test_removes_healable_links(self, project, sibling_twin, home):
        LinkManager(detect(project, "-reef", home=home)).kick("notes.md")
        store = home / ".reef"
        store.mkdir()
        shutil.move(str(sibling_twin), str(store / "proj-reef"))

        report = LinkManager(detect(project, "-reef", home=home)).unplug()
        assert report.count(OutcomeStatus.DONE) == 1
        assert not os.path.lexists(project / "notes.md")
        assert (store / "proj-reef" / "notes.md").is_file()

    def test_leaves_broken_links(self, pair, project):
        (project / "gone.txt").symlink_to(project.parent / "proj-reef" / "gone.txt")
        report = LinkManager(pair).unplug()
        assert report.count(OutcomeStatus.SKIPPED) == 1
        assert (project / "gone.txt").is_symlink()

    def test_plug_after_unplug_restores_links(self, pair, project, sibling_twin):
        manager = LinkManager(pair)
        manager.kick("data")
        manager.unplug()
        assert not os.path.lexists(project / "data")
        manager.plug()
        assert os.readlink(project / "data") == str(sibling_twin / "data")


@pytest.fixture
def linked_sibling(project, tmp_path):
    """``proj-reef`` is itself a symlink to the real twin directory."""
    real = tmp_path.resolve() / "stash"
    real.mkdir()
    (project.parent / "proj-reef").symlink_to(real, target_is_directory=True)
    return real


class TestSymlinkedSiblingTwin:
    def test_recall_prunes_real_twin(self, linked_sibling, project, home):
        manager = LinkManager(detect(project, "-reef", home=home))
        manager.kick("src/a.js")
        manager.recall("src/a.js")
        assert os.listdir(linked_sibling) == []
        assert (project / "src" / "a.js").read_text() == "console.log('a')\n"

    def test_second_kick_is_already_linked(self, linked_sibling, project, home):
        manager = LinkManager(detect(project, "-reef", home=home))
        manager.kick("notes.md")
        with pytest.raises(AlreadyLinkedError):
            manager.kick("notes.md")

    def test_kicked_entries_scan_as_linked(self, linked_sibling, project, home):
        pair = detect(project, "-reef", home=home)
        manager = LinkManager(pair)
        manager.kick("notes.md")
        manager.kick("data")
        assert {e.relative_path: e.state for e in scan(pair)} == {
            "data": LinkState.LINKED,
            "notes.md": LinkState.LINKED,
        }
