'''
Construction policies describe how to convert between the value of a field and its
representative, i.e. the fixed-width integer read from (or written to) the storage
in host byte order.

Having the representative as an intermediary allows value-based transformations
(like byte swapping) that can't be applied to the final value, for example an enum.
'''
import logging
from enum import Enum

from bitstring import Bits

from .enum import Endianness
from .exceptions import ConfigurationError


logger = logging.getLogger(__name__)


class ConstructionPolicy(object):
    '''Interface to implement for a custom policy'''

    def supports(self, endianness: Endianness) -> bool:
        '''Tell if the wire byte order passed can be converted by this policy.
        It's called when the schema is built, never during a traversal.'''
        raise NotImplementedError()

    def decode(self, representative: int, field, endianness: Endianness):
        raise NotImplementedError()

    def encode(self, value, field, endianness: Endianness) -> int:
        raise NotImplementedError()

    def __repr__(self):
        return f'<{self.__class__.__name__}>'


class DefaultConstructionPolicy(ConstructionPolicy):
    '''Identity conversion, with enums passing through their integer value.

    No byte swapping is implemented so only the host byte order is supported.
    '''

    def supports(self, endianness):
        return endianness.resolve(Endianness.NATIVE) == Endianness.host()

    def _check(self, endianness):
        if not self.supports(endianness):
            raise ConfigurationError(f'{self!r} can\'t convert from/to {endianness.name} endianness')

    def decode(self, representative, field, endianness):
        self._check(endianness)
        return self.to_value(representative, field)

    def encode(self, value, field, endianness):
        self._check(endianness)
        return self.to_representative(value)

    def to_value(self, representative, field):
        if field.enum is None:
            return representative

        try:
            return field.enum(representative)
        except ValueError:
            # unknown values are the business of the validation
            return representative

    def to_representative(self, value):
        if isinstance(value, Enum):
            return value.value

        return value


class ByteSwapPolicy(DefaultConstructionPolicy):
    '''Policy converting any byte order: representatives whose wire order is not
    the host one are byte swapped.'''

    def supports(self, endianness):
        return True

    def swap(self, representative: int, field) -> int:
        '''Reinterpret the bytes of the representative in the foreign order'''
        kind = 'int' if field.signed else 'uint'
        length = field.size * 8
        host, foreign = ('le', 'be') if Endianness.host() == Endianness.LITTLE else ('be', 'le')
        bits = Bits(**{f'{kind}{host}': representative, 'length': length})
        logger.debug('swapping 0x%x for %r' % (representative & ((1 << length) - 1), field))

        return getattr(bits, f'{kind}{foreign}')

    def decode(self, representative, field, endianness):
        if endianness.resolve(Endianness.NATIVE) != Endianness.host():
            representative = self.swap(representative, field)

        return self.to_value(representative, field)

    def encode(self, value, field, endianness):
        representative = self.to_representative(value)
        if endianness.resolve(Endianness.NATIVE) != Endianness.host():
            representative = self.swap(representative, field)

        return representative
