import sys
from enum import Enum, Flag, auto


class Validate(Flag):
    '''It indicates which check a decoded value must pass besides the expected value'''
    NONE        = 0
    ENUM        = 1 << 0  # the value must be a member of the enum
    ENUM_BOUNDS = 1 << 1  # the value must lie between the smallest and the largest member


class Endianness(Enum):
    INHERIT = auto()
    NATIVE  = auto()
    LITTLE  = auto()
    BIG     = auto()

    @classmethod
    def host(cls) -> "Endianness":
        return cls.LITTLE if sys.byteorder == 'little' else cls.BIG

    @classmethod
    def foreign(cls) -> "Endianness":
        return cls.BIG if sys.byteorder == 'little' else cls.LITTLE

    def resolve(self, parent: "Endianness") -> "Endianness":
        '''Return the concrete byte order (LITTLE or BIG) of a field whose
        container resolved to "parent".'''
        if self is Endianness.INHERIT:
            return parent.resolve(Endianness.NATIVE)
        if self is Endianness.NATIVE:
            return Endianness.host()

        return self
