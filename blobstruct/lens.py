'''
# Lenses

A lens "zooms" into the serialized data of an aggregate and brings a single,
possibly deeply nested, field into focus: it's possible to read or write it
without touching the sibling fields.

A lens is built from a chain of selectors, each naming an immediate field of
the aggregate selected by the previous one

    Lens(BMPFile, 'secondary', 'compression')
    Lens(BMPFile, 'secondary.compression')
    Lens(BMPFile.secondary, SecondaryHeaderV4.compression)

The chain is validated when the lens is built. The operations assume the
storage is positioned at the start of the root aggregate; on seekable storages
the cursor is moved back there once the operation is done (also on failure),
so that lens operations can follow each other without any bookkeeping.
Sequential storages are only skipped forward and remain after the field.
'''
import logging
from typing import List, Optional

from .core import Result, as_storage, get_policy, is_aggregate
from .enum import Endianness
from .exceptions import ConfigurationError, StorageError, ValidationError
from .fields import AggregateField, Field
from .layout import chain_offset, field_size
from .policy import ConstructionPolicy


logger = logging.getLogger(__name__)


class Lens(object):

    def __init__(self, *path):
        self.root, selectors = self._split(path)
        self.fields: List[Field] = []

        aggregate = self.root
        for selector in selectors:
            if aggregate is None:
                raise ConfigurationError(
                    f"'{self.fields[-1].name}' is not an aggregate: can't select '{selector}' from it",
                    chain=self.chain)

            field = aggregate._meta.member(selector)
            self.fields.append(field)
            aggregate = field.aggregate if isinstance(field, AggregateField) else None

        if not self.fields:
            raise ConfigurationError(f'a lens on {self.root.__name__} needs at least one field')

        self.field = self.fields[-1]
        self.offset = chain_offset(self.root._meta, self.fields)
        self.size = field_size(self.field)

    @staticmethod
    def _split(path):
        if not path:
            raise ConfigurationError('a lens needs a path')

        first, selectors = path[0], list(path[1:])
        if is_aggregate(first):
            root = first
        elif isinstance(first, Field) and is_aggregate(first.owner):
            root = first.owner
            selectors.insert(0, first)
        else:
            raise ConfigurationError(f'{first!r} is neither an aggregate nor a field of one')

        components = []
        for selector in selectors:
            if isinstance(selector, str):
                components.extend(selector.split('.'))
            else:
                components.append(selector)

        return root, components

    def __repr__(self):
        return '<%s(%s.%s @ 0x%x)>' % (self.__class__.__name__, self.root.__name__, '.'.join(self.chain), self.offset)

    @property
    def chain(self) -> List[str]:
        return [_.name for _ in self.fields]

    @property
    def endianness(self) -> Endianness:
        '''The byte order resolved by the aggregate containing the target field'''
        context = self.root._meta.endianness.resolve(Endianness.NATIVE)
        for field in self.fields[:-1]:
            context = field.endianness.resolve(context)
            context = field.aggregate._meta.endianness.resolve(context)

        return context

    def _focus(self, storage, operation):
        '''Move to the field, do the operation and come back if possible'''
        logger.debug('lens %s on %s' % (self, storage))
        if not storage.seekable:
            storage.skip(self.offset)
            return self._wrap(operation, storage)

        start = storage.tell()
        try:
            storage.seek(self.offset)
            return self._wrap(operation, storage)
        finally:
            # back to the start of the root aggregate
            storage.seek(start - storage.tell())

    def _wrap(self, operation, storage):
        try:
            return operation(storage)
        except ValidationError as e:
            e.chain[:0] = self.chain
            raise

    def load(self, storage, policy: Optional[ConstructionPolicy] = None):
        policy = get_policy(self.root, policy)
        endianness = self.endianness
        with as_storage(storage) as backend:
            return self._focus(backend, lambda _: self.field.load(_, policy, endianness))

    def store(self, storage, value, policy: Optional[ConstructionPolicy] = None) -> None:
        policy = get_policy(self.root, policy)
        self.root._meta.check_invariants()
        endianness = self.endianness
        with as_storage(storage, flags='r+b') as backend:
            self._focus(backend, lambda _: self.field.store(_, value, policy, endianness))

    def modify(self, storage, function, target=None, policy: Optional[ConstructionPolicy] = None):
        '''Load the field, pass it to "function" and store the result, into "target"
        if given, otherwise back into the same (seekable) storage.'''
        with as_storage(storage, flags='rb' if target is not None else 'r+b') as source:
            if target is None:
                if not source.seekable:
                    raise ConfigurationError(f'{source!r} can\'t be modified in place: a target is needed')
                target = source

            value = function(self.load(source, policy))
            self.store(target, value, policy)

        return value

    def try_load(self, storage, policy: Optional[ConstructionPolicy] = None) -> Result:
        try:
            return Result(value=self.load(storage, policy))
        except (ValidationError, StorageError) as e:
            return Result(error=e)

    def try_store(self, storage, value, policy: Optional[ConstructionPolicy] = None) -> Result:
        try:
            self.store(storage, value, policy)
        except (ValidationError, StorageError) as e:
            return Result(error=e)

        return Result(value=value)


def lens_load(storage, *path, policy: Optional[ConstructionPolicy] = None):
    return Lens(*path).load(storage, policy)


def lens_store(storage, value, *path, policy: Optional[ConstructionPolicy] = None) -> None:
    Lens(*path).store(storage, value, policy)


def lens_modify(storage, function, *path, target=None, policy: Optional[ConstructionPolicy] = None):
    return Lens(*path).modify(storage, function, target=target, policy=policy)
