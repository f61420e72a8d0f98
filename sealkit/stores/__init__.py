from .memory import (
    InMemorySaltStore,
    InMemoryGrantStore,
    InMemoryKeyDirectory,
    )
from .sqlite import (
    SqliteDatabase,
    SqliteSaltStore,
    SqliteGrantStore,
    SqliteKeyDirectory,
    )
