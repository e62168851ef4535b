from pathlib import Path

import pytest

from mobilekit.traverse import (
    DEFAULT_TEMPLATE_EXT,
    Action,
    ActionKind,
    TraversalError,
    no_transform,
    traverse,
)


@pytest.fixture
def tree(tmp_path):
    src = tmp_path / "src"
    (src / "sub").mkdir(parents=True)
    (src / "a.txt").write_text("plain")
    (src / "t.txt.hbs").write_text("{{x}}")
    (src / "sub" / "b.txt").write_text("nested")
    return src, tmp_path / "out"


def test_actions_cover_the_tree(tree):
    src, dest = tree
    actions = list(traverse(src, dest, no_transform, DEFAULT_TEMPLATE_EXT))
    creates = {a.dest for a in actions if a.is_create_directory()}
    copies = {a.src: a.dest for a in actions if a.is_copy_file()}
    templates = {a.src: a.dest for a in actions if a.is_write_template()}
    assert creates == {dest, dest / "sub"}
    assert copies == {src / "a.txt": dest / "a.txt", src / "sub" / "b.txt": dest / "sub" / "b.txt"}
    assert templates == {src / "t.txt.hbs": dest / "t.txt"}


def test_directories_come_first(tree):
    src, dest = tree
    actions = list(traverse(src, dest))
    kinds = [a.kind for a in actions]
    last_create = max(i for i, k in enumerate(kinds) if k is ActionKind.CREATE_DIRECTORY)
    first_file = min(i for i, k in enumerate(kinds) if k is not ActionKind.CREATE_DIRECTORY)
    assert last_create < first_file


def test_no_template_ext_copies_everything(tree):
    src, dest = tree
    actions = traverse(src, dest, no_transform, None)
    assert not any(a.is_write_template() for a in actions)
    assert sum(a.is_copy_file() for a in actions) == 3


def test_single_file_source(tree):
    src, dest = tree
    actions = traverse(src / "a.txt", dest)
    assert list(actions) == [Action(ActionKind.COPY_FILE, dest / "a.txt", src / "a.txt")]


def test_transform_applies_to_destinations(tree):
    src, dest = tree
    moved = dest.parent / "elsewhere"

    def relocate(path):
        return moved / path.relative_to(dest)

    actions = traverse(src, dest, relocate)
    assert all(a.dest.is_relative_to(moved) for a in actions)
    assert all(a.src.is_relative_to(src) for a in actions if a.src is not None)


def test_transform_failure_is_wrapped(tree):
    src, dest = tree

    def broken(path):
        raise ValueError("nope")

    with pytest.raises(TraversalError) as info:
        traverse(src, dest, broken)
    assert isinstance(info.value.cause, ValueError)
    assert info.value.path == dest
    assert str(info.value).startswith("Failed to transform path at")


def test_missing_directory(tmp_path):
    missing = tmp_path / "missing"
    with pytest.raises(TraversalError) as info:
        traverse(missing, tmp_path / "out")
    assert info.value.path == missing
    assert isinstance(info.value.cause, OSError)
    assert str(info.value).startswith("Failed to read directory at")


def test_action_constructors():
    write = Action.write_template(Path("x/y.conf.hbs"), Path("d"), no_transform)
    copy = Action.copy_file(Path("x/y.conf.hbs"), Path("d"), no_transform)
    create = Action.create_directory(Path("d"), no_transform)
    assert write.is_write_template() and not write.is_copy_file()
    assert write.dest == Path("d") / Path("x/y.conf.hbs").stem
    assert copy.dest == Path("d") / Path("x/y.conf.hbs").name
    assert create.is_create_directory() and create.src is None


def test_no_transform_returns_path():
    assert no_transform("a/b") == Path("a/b")