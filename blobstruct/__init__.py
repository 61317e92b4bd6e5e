"""
# Blobstruct: binary structs for humans.

A wire format (a file header, a packet, ...) is described declaratively as an
aggregate: an ordered sequence of fixed-width fields, possibly nested, whose
byte layout is independent of how the host lays out the same data in memory.

Two basic main operations are defined for an aggregate:

 1. load(): read the binary data and build a value, validating each field
    (expected values, enum membership or bounds) as soon as it's decoded.

 2. store(): encode the value into binary data.

to these we add one more

 3. lens: compute the offset of a single nested field from the schema and
    load/store only that, without visiting the siblings.

The schema of an aggregate is built and validated once, when its class is
created: a malformed schema raises ConfigurationError before any byte is
read or written.
"""
from .core import (
    Aggregate,
    Result,
    layout_of,
    load,
    load_many,
    pack,
    sizeof,
    store,
    store_many,
    try_load,
    try_store,
    unpack,
)
from .enum import Endianness, Validate
from .exceptions import (
    BlobstructException,
    ConfigurationError,
    InvalidEnumValueError,
    StorageError,
    StorageExhausted,
    UnexpectedValueError,
    UnrepresentableValueError,
    ValidationError,
)
from .lens import Lens, lens_load, lens_modify, lens_store
from .policy import ByteSwapPolicy, ConstructionPolicy, DefaultConstructionPolicy
from .streams import FileStorage, MemoryStorage, StreamStorage, open_storage
