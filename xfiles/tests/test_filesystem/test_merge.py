import pytest

from xfiles.errors import MergeConflict
from xfiles.filesystem import FileSystem, LastWriterWins, MergeStrategy, OpenMode
from xfiles.index import CommitIndex
from xfiles.remote import MockAdapter


class Concatenate(MergeStrategy):
    def __init__(self):
        self.calls = []

    def merge(self, base, left, right):
        self.calls.append((base, left, right))
        return left + right


class Refuse(MergeStrategy):
    def merge(self, base, left, right):
        raise MergeConflict("refused")


async def create_fs(**kwargs):
    return FileSystem("tester", MockAdapter(), await CommitIndex.open(), **kwargs)


def test_last_writer_wins():
    assert LastWriterWins().merge(b"base", b"left", b"right") == b"right"


def test_merge_strategy_is_abstract():
    with pytest.raises(TypeError):
        MergeStrategy()


@pytest.mark.asyncio
async def test_custom_strategy():
    strategy = Concatenate()
    fs = await create_fs(merge_strategy=strategy)

    f = await fs.open("notes.txt", OpenMode.CREATE)
    await f.write(b"base")

    h1 = await fs.open("notes.txt", OpenMode.READ_WRITE)
    h2 = await fs.open("notes.txt", OpenMode.READ_WRITE)

    await h1.write(b"left")
    await h2.write(b"right")

    assert strategy.calls == [(b"base", b"left", b"right")]
    assert await h2.read() == b"leftright"
    assert h2.commit.parents == [h1.head]

    await fs.close()


@pytest.mark.asyncio
async def test_strategy_without_conflict_not_called():
    strategy = Concatenate()
    fs = await create_fs(merge_strategy=strategy)

    f = await fs.open("notes.txt", OpenMode.CREATE)
    await f.write(b"a")
    await f.write(b"b")

    assert strategy.calls == []

    await fs.close()


@pytest.mark.asyncio
async def test_merge_conflict_surfaced():
    fs = await create_fs(merge_strategy=Refuse())

    await fs.open("notes.txt", OpenMode.CREATE)

    h1 = await fs.open("notes.txt", OpenMode.READ_WRITE)
    h2 = await fs.open("notes.txt", OpenMode.READ_WRITE)

    await h1.write(b"left")

    with pytest.raises(MergeConflict):
        await h2.write(b"right")

    assert await fs.forks("notes.txt") == [h1.head]

    await fs.close()
