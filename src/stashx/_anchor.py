"""Data anchor — plain Python structures that hold all reactive state.

Every Value Store, Derived Store and Async Derived Store is an integer id.
Handles are thin views holding an id and a path; everything they read or
write lives here, keyed by that id, for the lifetime of the process.
"""

import itertools

# Value Store state
values: dict[int, object] = {}
listeners: dict[int, dict[int, object]] = {}  # store_id -> {token: callback}

# Derived Store state
compute_fns: dict[int, object] = {}  # derived_id -> fn(get)
dependencies: dict[int, dict[int, None]] = {}  # derived_id -> ordered set of source ids
dependents: dict[int, dict[int, None]] = {}  # source_id -> ordered set of derived ids
last_computed: dict[int, object] = {}
runners: dict[int, object] = {}  # derived_id -> callable re-evaluating it on upstream change
write_through: dict[int, object] = {}  # chained derived_id -> source Handle

# Async Derived Store state
async_fns: dict[int, object] = {}
running: dict[int, bool] = {}
last_inputs: dict[int, object] = {}
latest_inputs: dict[int, object] = {}

# Handle cache: (store_id, path) -> Handle
handles: dict[tuple, object] = {}

# Strong references to in-flight asyncio tasks
tasks: set = set()

# ID and subscription-token generation
_id_counter = itertools.count(1)
_token_counter = itertools.count(1)


def new_id() -> int:
    return next(_id_counter)


def new_token() -> int:
    return next(_token_counter)


def is_derived(store_id: int) -> bool:
    return store_id in compute_fns


def is_async(store_id: int) -> bool:
    return store_id in async_fns
