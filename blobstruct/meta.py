import copy
import logging
from types import MappingProxyType
from typing import Dict, List, Tuple

from .enum import Endianness
from .exceptions import ConfigurationError
from .policy import ConstructionPolicy, DefaultConstructionPolicy


logger = logging.getLogger(__name__)


class FieldBase(object):
    '''Once the aggregate owning it is built a field can't be modified anymore.'''

    def __setattr__(self, name, value):
        if self.__dict__.get('_frozen', False):
            raise ConfigurationError(
                f"field '{self.__dict__.get('name')}' can't be modified once its aggregate is built")
        super().__setattr__(name, value)

    def freeze(self):
        self.__dict__['_frozen'] = True

    def thaw(self):
        self.__dict__['_frozen'] = False

    def contribute_to_aggregate(self, cls, name):
        if name.startswith('_') or hasattr(cls, name):
            raise ConfigurationError(f'field {name} clashes with an attribute of class {cls.__name__}')

        self.bind(cls, name)
        cls._meta.add_field(name, self)
        setattr(cls, name, FieldAccessor(self))

    def bind(self, owner, name):
        self.owner = owner
        self.name = name

    def create(self, owner, name):
        '''Return an unfrozen copy of this field bound to another aggregate.'''
        instance = copy.deepcopy(self)
        instance.thaw()
        instance.bind(owner, name)
        return instance


class FieldAccessor(object):
    """Wrapper around field access of an aggregate: from the class it returns the
    field itself (useful as selector), from an instance the value."""

    def __init__(self, field: FieldBase):
        self.field = field

    def __get__(self, instance, owner=None):
        if instance is None:
            return self.field

        try:
            return instance.__dict__[self.field.name]
        except KeyError:
            raise AttributeError(f"'{owner.__name__}' has no value for field '{self.field.name}'") from None

    def __set__(self, instance, value):
        instance.__dict__[self.field.name] = value


class AggregateDescriptor(object):
    """Class containing the schema of an aggregate: the ordered fields and the
    constraints on the whole.

    It's built by the metaclass and it's mutable only during the configuration
    of the class; after that it's validated and frozen."""

    OPTIONS = ('expected_size', 'tight_packing', 'endianness', 'policy')

    def __init__(self, name: str):
        self.name = name
        self.fields: Dict[str, FieldBase] = {}
        self.expected_size = None
        self.tight_packing = False
        self.endianness = Endianness.INHERIT
        self.policy: ConstructionPolicy = DefaultConstructionPolicy()
        self.size = None
        self.layout: Dict[str, Tuple[int, int]] = {}
        self._frozen = False

    def __setattr__(self, name, value):
        if self.__dict__.get('_frozen', False):
            raise ConfigurationError(f"the schema of '{self.name}' can't be modified once built")
        super().__setattr__(name, value)

    def __repr__(self):
        return '<%s(%s: %s)>' % (self.__class__.__name__, self.name, ','.join(self.fields))

    def add_field(self, name, field):
        self.fields[name] = field

    def inherit(self, parent: "AggregateDescriptor", owner):
        for name, field in parent.get_fields():
            self.add_field(name, field.create(owner, name))

        self.endianness = parent.endianness
        self.policy = parent.policy

    def apply_options(self, options):
        '''Copy the attributes of the inner "class Meta" of an aggregate'''
        if options is None:
            return

        for key, value in vars(options).items():
            if key.startswith('_'):
                continue
            if key not in self.OPTIONS:
                raise ConfigurationError(f"'{key}' is not a valid option for '{self.name}'")
            setattr(self, key, value)

    def get_ordered_fields_name(self) -> List[str]:
        return list(self.fields)

    def get_fields(self) -> List[Tuple[str, FieldBase]]:
        '''It returns a list of couples (name, instance) for each field.'''
        return list(self.fields.items())

    def member(self, selector) -> FieldBase:
        '''Find an immediate field using its name, its position or the field itself.'''
        if isinstance(selector, str):
            if selector not in self.fields:
                raise ConfigurationError(f"'{self.name}' has no field named '{selector}'")
            return self.fields[selector]

        if isinstance(selector, int) and not isinstance(selector, bool):
            names = self.get_ordered_fields_name()
            if not 0 <= selector < len(names):
                raise ConfigurationError(f"'{self.name}' has no field at position {selector}")
            return self.fields[names[selector]]

        if isinstance(selector, FieldBase):
            if self.fields.get(selector.name) is not selector:
                raise ConfigurationError(f"field '{selector.name}' is not a field of '{self.name}'")
            return selector

        raise ConfigurationError(f"'{selector!r}' is not a valid field selector")

    def check(self):
        '''The schema validation pass, run once when the aggregate is created.'''
        if not isinstance(self.endianness, Endianness):
            raise ConfigurationError(f"endianness of '{self.name}' must be an Endianness")

        if not isinstance(self.policy, ConstructionPolicy):
            raise ConfigurationError(f"policy of '{self.name}' must be a ConstructionPolicy instance")

        for name, field in self.get_fields():
            try:
                field.check()
            except ConfigurationError as e:
                e.chain.insert(0, name)
                raise

        self.size = self.check_invariants()
        self.check_policy(self.policy)

        from . import layout
        self.layout = layout.compute_layout(self)

    def check_invariants(self) -> int:
        '''Verify the expected size and the tight packing, returning the serialized size'''
        from . import layout

        size = layout.aggregate_size(self)

        if self.expected_size is not None and self.expected_size != size:
            raise ConfigurationError(
                f"serialized size of '{self.name}' is {size} bytes, expected {self.expected_size}")

        if self.tight_packing:
            native = layout.native_size(self)
            if native != size:
                raise ConfigurationError(
                    f"'{self.name}' is not tightly packed: {size} bytes serialized, {native} in memory")

        return size

    def check_policy(self, policy: ConstructionPolicy, endianness=Endianness.NATIVE):
        '''Make sure the policy can convert every field of the tree'''
        context = self.endianness.resolve(endianness)
        for name, field in self.get_fields():
            try:
                field.check_policy(policy, context)
            except ConfigurationError as e:
                e.chain.insert(0, name)
                raise

    def freeze(self):
        for _, field in self.get_fields():
            field.freeze()

        self.fields = MappingProxyType(self.fields)
        self._frozen = True


class MetaAggregate(type):

    def __new__(cls, names, bases, attrs):
        '''Collect the fields in declaration order, configure and validate the schema.'''
        module = attrs.pop('__module__')
        classcell = attrs.pop('__classcell__', None)
        options = attrs.pop('Meta', None)

        new_attrs = {
            '__module__': module,
        }
        if classcell is not None:
            new_attrs['__classcell__'] = classcell
        new_cls = super(MetaAggregate, cls).__new__(cls, names, bases, new_attrs)

        new_cls._meta = AggregateDescriptor(names)

        # handle inheritance
        parents = [_ for _ in bases if isinstance(_, MetaAggregate)]
        for parent in parents:
            new_cls._meta.inherit(parent._meta, new_cls)
            for name, field in new_cls._meta.get_fields():
                setattr(new_cls, name, FieldAccessor(field))

        for obj_name, obj in attrs.items():
            new_cls.add_to_class(obj_name, obj)

        new_cls._meta.apply_options(options)
        new_cls.configure(new_cls._meta)

        logger.debug('validating schema of \'%s\'' % names)
        new_cls._meta.check()
        new_cls._meta.freeze()

        return new_cls

    def add_to_class(cls, name, value):
        if hasattr(value, 'contribute_to_aggregate'):
            logger.debug('contribute_to_aggregate() found for field \'%s\'' % name)
            value.contribute_to_aggregate(cls, name)
        else:
            setattr(cls, name, value)
