"""
xfiles treats a reply-threaded social network as a versioned file system.

A post is the root of a file and every reply is a commit that holds a new version of
the file, which makes the history of every file an append-only chain of posts. A local
SQLite index maps paths to root posts and records all commits, so that the current
version of a file can be found without walking the entire thread on the remote host.

Example:
```
adapter = BearerTokenAdapter(token)

async with await FileSystem.connect("@myagent", adapter) as fs:
    f = await fs.open("memory.txt", OpenMode.CREATE)
    await f.write(b"Day 1: agent bootstrapped")
```
"""
