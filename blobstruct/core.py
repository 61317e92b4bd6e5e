"""
Core module: the aggregate base class and the traversals loading and storing it.
"""
import logging
from contextlib import contextmanager
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from .enum import Endianness
from .fields import Field
from .layout import field_size
from .meta import MetaAggregate
from .policy import ConstructionPolicy, DefaultConstructionPolicy
from .streams import Backend, FileStorage, MemoryStorage, open_storage
from .exceptions import (
    BlobstructException,
    ConfigurationError,
    StorageError,
    UnrepresentableValueError,
    ValidationError,
)


logger = logging.getLogger(__name__)


class Aggregate(metaclass=MetaAggregate):
    """
    The main class that defines a format: subclass it and declare the fields
    as class attributes, their order is the order on the wire.

        class Header(Aggregate):
            signature = fields.UInt16Field(equals_to=0x4d42)
            size = fields.UInt32Field()

    An instance is a value: the fields are plain attributes, also reachable by
    position. The schema is in the "_meta" attribute of the class.

    Aggregate wide options go in an inner "class Meta" (expected_size, tight_packing,
    endianness, policy); the fields can be further configured overriding configure().
    """

    def __init__(self, *args, **kwargs):
        names = self._meta.get_ordered_fields_name()
        if len(args) > len(names):
            raise TypeError(f'{self.__class__.__name__} takes at most {len(names)} positional arguments')

        values = dict(zip(names, args))
        for name, value in kwargs.items():
            if name not in self._meta.fields:
                raise TypeError(f'{self.__class__.__name__} has no field named \'{name}\'')
            if name in values:
                raise TypeError(f'field \'{name}\' given both by position and by name')
            values[name] = value

        for name, field in self._meta.get_fields():
            setattr(self, name, values[name] if name in values else field.default_value())

    @classmethod
    def configure(cls, descriptor):
        '''Customization point called with the default schema before it's validated'''
        pass

    def __repr__(self):
        msg = []
        for name, field in self._meta.get_fields():
            msg.append('%s=%s' % (name, field.represent(getattr(self, name))))
        return '<%s(%s)>' % (self.__class__.__name__, ','.join(msg))

    def __str__(self):
        msg = ''
        for name, field in self._meta.get_fields():
            msg += '%s: %s\n' % (name, field.represent(getattr(self, name)))
        return msg

    def __eq__(self, other):
        if other.__class__ is not self.__class__:
            return NotImplemented

        return self.astuple() == other.astuple()

    __hash__ = None

    def __iter__(self):
        for name in self._meta.get_ordered_fields_name():
            yield getattr(self, name)

    def __getitem__(self, index: int):
        return getattr(self, self._meta.get_ordered_fields_name()[index])

    def astuple(self) -> Tuple:
        return tuple(self)

    def get_values(self) -> List[Tuple[str, Any]]:
        '''It returns a list of couples (name, value) for each field.'''
        return [(_, getattr(self, _)) for _ in self._meta.get_ordered_fields_name()]

    @classmethod
    def load(cls, storage, policy: Optional[ConstructionPolicy] = None):
        return load(cls, storage, policy)

    def store(self, storage, policy: Optional[ConstructionPolicy] = None) -> None:
        store(storage, self, policy)

    def pack(self, policy: Optional[ConstructionPolicy] = None) -> bytes:
        return pack(self, policy)

    @classmethod
    def _load(cls, storage: Backend, policy: ConstructionPolicy, endianness=Endianness.INHERIT):
        '''The traversal without any check on the schema: errors leave the storage
        in an undefined position.'''
        context = cls._meta.endianness.resolve(endianness)
        values = {}
        for name, field in cls._meta.get_fields():
            logger.debug('loading %s.%s' % (cls.__name__, name))
            try:
                values[name] = field.load(storage, policy, context)
            except ValidationError as e:
                e.chain.insert(0, name)
                raise

        return cls(**values)

    def _store(self, storage: Backend, policy: ConstructionPolicy, endianness=Endianness.INHERIT):
        context = self._meta.endianness.resolve(endianness)
        for name, field in self._meta.get_fields():
            logger.debug('storing %s.%s' % (self.__class__.__name__, name))
            try:
                field.store(storage, getattr(self, name), policy, context)
            except ValidationError as e:
                e.chain.insert(0, name)
                raise


class Result(NamedTuple):
    '''Outcome of the try_*() operations: either a value or the error that stopped them'''
    value: Any = None
    error: Optional[BlobstructException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self):
        if self.error is not None:
            raise self.error

        return self.value


def is_aggregate(obj) -> bool:
    return isinstance(obj, MetaAggregate)


def get_policy(cls, policy: Optional[ConstructionPolicy] = None) -> ConstructionPolicy:
    '''Return the policy to use for the aggregate, checking it can handle the whole schema.'''
    if not is_aggregate(cls):
        raise ConfigurationError(f'{cls!r} is not an aggregate')

    if policy is None:
        return cls._meta.policy

    if not isinstance(policy, ConstructionPolicy):
        raise ConfigurationError(f'{policy!r} is not a ConstructionPolicy')

    cls._meta.check_policy(policy)

    return policy


@contextmanager
def as_storage(obj, flags='rb'):
    '''Normalize obj into a backend, closing it on exit if it was opened here.

    "flags" is the mode used when obj is a path.'''
    storage = open_storage(obj, flags=flags)
    try:
        yield storage
    finally:
        if storage is not obj and isinstance(storage, FileStorage):
            storage.close()


def load(cls, storage, policy: Optional[ConstructionPolicy] = None):
    '''Build an instance of the aggregate "cls" reading from the storage.

    On success the storage has advanced of exactly sizeof(cls) bytes; on failure
    its position is undefined.'''
    policy = get_policy(cls, policy)
    with as_storage(storage) as backend:
        logger.debug('loading \'%s\' from %s' % (cls.__name__, backend))
        return cls._load(backend, policy)


def store(storage, value, policy: Optional[ConstructionPolicy] = None) -> None:
    '''Write the aggregate instance into the storage.'''
    cls = value.__class__
    policy = get_policy(cls, policy)
    # nothing is written if the schema doesn't hold
    cls._meta.check_invariants()

    with as_storage(storage, flags='r+b') as backend:
        logger.debug('storing \'%s\' into %s' % (cls.__name__, backend))
        value._store(backend, policy)


def try_load(cls, storage, policy: Optional[ConstructionPolicy] = None) -> Result:
    '''Like load() but validation and storage failures are returned instead of raised'''
    try:
        return Result(value=load(cls, storage, policy))
    except (ValidationError, StorageError) as e:
        return Result(error=e)


def try_store(storage, value, policy: Optional[ConstructionPolicy] = None) -> Result:
    try:
        store(storage, value, policy)
    except (ValidationError, StorageError) as e:
        return Result(error=e)

    return Result(value=value)


def unpack(cls, data, policy: Optional[ConstructionPolicy] = None):
    '''Load an aggregate from the start of a bytes-like object'''
    return load(cls, MemoryStorage(data), policy)


def pack(value, policy: Optional[ConstructionPolicy] = None) -> bytes:
    '''Encode the aggregate instance into its binary representation'''
    storage = MemoryStorage.allocate(sizeof(value.__class__))
    store(storage, value, policy)

    return storage.getvalue()


def sizeof(kind) -> int:
    '''Serialized size of an aggregate class or of a field'''
    if is_aggregate(kind):
        return kind._meta.size

    if isinstance(kind, Field):
        return field_size(kind)

    raise ConfigurationError(f'{kind!r} is neither an aggregate nor a field')


def layout_of(cls) -> Dict[str, Tuple[int, int]]:
    '''The couples (offset, size) of each field of the aggregate'''
    if not is_aggregate(cls):
        raise ConfigurationError(f'{cls!r} is not an aggregate')

    return dict(cls._meta.layout)


def _many_policy(kind, policy):
    if is_aggregate(kind):
        return get_policy(kind, policy)

    if not isinstance(kind, Field):
        raise ConfigurationError(f'{kind!r} is neither an aggregate nor a field')

    # a standalone field is not validated by any aggregate, a bound one
    # was checked (and frozen) with its aggregate
    if kind.owner is None:
        kind.check()
    policy = policy if policy is not None else DefaultConstructionPolicy()
    kind.check_policy(policy, Endianness.NATIVE)

    return policy


def load_many(kind, storage, count: int, policy: Optional[ConstructionPolicy] = None) -> List:
    '''Load "count" consecutive elements: kind is an aggregate class or a field
    describing elementary values (like UInt8Field()).'''
    policy = _many_policy(kind, policy)
    values = []
    with as_storage(storage) as backend:
        for index in range(count):
            try:
                if is_aggregate(kind):
                    values.append(kind._load(backend, policy))
                else:
                    values.append(kind.load(backend, policy, Endianness.NATIVE))
            except ValidationError as e:
                e.chain.insert(0, index)
                raise

    return values


def store_many(kind, storage, values, policy: Optional[ConstructionPolicy] = None) -> None:
    policy = _many_policy(kind, policy)
    with as_storage(storage, flags='r+b') as backend:
        for index, value in enumerate(values):
            try:
                if is_aggregate(kind):
                    if not isinstance(value, kind):
                        raise UnrepresentableValueError(f'{value!r} is not a {kind.__name__}', actual=value)
                    value._store(backend, policy)
                else:
                    kind.store(backend, value, policy, Endianness.NATIVE)
            except ValidationError as e:
                e.chain.insert(0, index)
                raise
