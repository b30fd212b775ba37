# minikv

A small in-memory key-value server speaking a compact binary protocol.
It stores string values and sorted sets, supports per-key expiry in
milliseconds, and closes connections that stay idle for five seconds.
It needs nothing beyond the Python standard library.

## Installing

    pip install .

For the tests:

    pip install .[test]
    pytest

## Running the server

    minikv-server [--host HOST] [--port PORT]

By default the server listens on `0.0.0.0`, port 1234. It runs a single
event loop; sorted sets with more than 1000 members are released on a
small pool of background threads when their key is deleted or expires.
Stop it with Ctrl-C.

## Talking to it

`minikv-cli` sends its arguments as one command to the server on
127.0.0.1:1234 and prints the reply:

    minikv-cli set greeting hello
    (nil)
    minikv-cli get greeting
    (str) hello
    minikv-cli zadd scores 100 alice
    (int) 1
    minikv-cli zquery scores 0 "" 0 10
    (arr) len=2
    (str) alice
    (dbl) 100
    (arr) end

The client takes no options. A request larger than 4096 bytes, or a
reply larger than that, is refused with a message on standard error.

## Commands

| Command                                 | Reply                                   |
|-----------------------------------------|-----------------------------------------|
| `get key`                               | string, or nil                          |
| `set key value`                         | nil                                     |
| `del key`                               | 1 if removed, else 0                    |
| `pexpire key ttl_ms`                    | 1 if the key exists, else 0; a negative TTL removes expiry |
| `pttl key`                              | milliseconds left, -1 for no TTL, -2 for no key |
| `keys`                                  | array of all keys                       |
| `zadd zset score name`                  | 1 if added, 0 if the score was updated  |
| `zrem zset name`                        | 1 if removed, else 0                    |
| `zscore zset name`                      | score, or nil                           |
| `zquery zset score name offset limit`   | array of name/score pairs, starting at the first pair at or above (score, name), moved by offset |

Command names are lower case and must have exactly the arguments shown.
A missing key counts as an empty sorted set. In `zquery`, `limit` counts
array items, two per member, and a limit of zero or less gives an empty
array. Unknown commands, wrong value types and bad arguments come back
as error replies carrying a code and a message.

## Using it as a library

`minikv.commands.Database` runs commands without any networking:

```python
from minikv.commands import Database
from minikv.protocol import format_response

db = Database()
db.execute(["set", "greeting", "hello"])
print(format_response(db.execute(["get", "greeting"])), end="")
# (str) hello
```

`Database.execute` returns the serialized reply body. `Database` accepts
a `clock` callable returning milliseconds, which makes expiry easy to
drive by hand; `process_timers()` deletes keys whose TTL has passed and
`next_expiry()` reports the earliest expiry time.

The data structures behind it are usable on their own:

- `minikv.zset.ZSet` – a sorted set indexed by name and by (score, name),
  with `insert`, `lookup`, `delete`, `seek_ge`, `clear` and
  `minikv.zset.znode_offset` for moving by rank.
- `minikv.avl` – an intrusive AVL tree with subtree sizes (`fix`,
  `remove`, `offset`).
- `minikv.hashtable.HMap` – a chained hash map with progressive rehashing.
- `minikv.heap` – a min-heap whose items track their own position.
- `minikv.dlist.DList` – a circular doubly linked list.
- `minikv.thread_pool.ThreadPool` – a fixed pool of worker threads.
- `minikv.server.Server` – the event-loop server, usable as a context
  manager, with `serve_forever()` and `close()`.

## Wire format

Each message is a little-endian 32-bit length followed by its body. A
request body is a count of strings followed by length-prefixed strings.
A reply body is one tagged value: nil, error, string, 64-bit integer,
double or array. `minikv.protocol` holds the encoders and decoders
(`encode_request`, `parse_request`, `Writer`, `frame_response`,
`format_response`).

## What it does not do

Everything lives in memory: nothing is written to disk, and all data is
lost when the server stops. There is no authentication, no replication
and no configuration file. The client always connects to 127.0.0.1 on
port 1234.