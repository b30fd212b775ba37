"""In-memory key-value server and client with strings, sorted sets and expiring keys."""

__version__ = "0.1.0"

__all__ = [
    "avl",
    "client",
    "commands",
    "dlist",
    "hashtable",
    "heap",
    "protocol",
    "server",
    "thread_pool",
    "zset",
]