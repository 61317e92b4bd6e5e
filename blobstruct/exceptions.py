from typing import List, Optional, Union


class BlobstructException(Exception):
    '''Base class to extend in order to throw exception in blobstruct.

    It carries the chain of the fields that caused the exception, from the
    outermost aggregate down to the failing field (array positions are
    stored as integers).
    '''

    def __init__(self, *args, chain: Optional[List[Union[str, int]]] = None):
        self.chain = chain if chain is not None else []
        super().__init__(*args)

    @property
    def field(self) -> str:
        '''The symbolic identifier of the failing field, like "header.palette[3].red".'''
        path = ''
        for component in self.chain:
            if isinstance(component, int):
                path += f'[{component}]'
            else:
                path += f'.{component}' if path else component

        return path

    def __str__(self):
        msg = super().__str__()
        if not self.chain:
            return msg

        return f'{self.field}: {msg}' if msg else self.field


class ConfigurationError(BlobstructException):
    '''The schema is malformed: this is a programming mistake, never a data problem.'''
    pass


class ValidationError(BlobstructException):
    '''A value violates the constraints configured for its field.'''

    def __init__(self, *args, actual=None, **kwargs):
        self.actual = actual
        super().__init__(*args, **kwargs)


class UnexpectedValueError(ValidationError):

    def __init__(self, expected, actual, **kwargs):
        self.expected = expected
        super().__init__(f'expected {expected!r}, found {actual!r}', actual=actual, **kwargs)


class InvalidEnumValueError(ValidationError):

    def __init__(self, enum, actual, **kwargs):
        self.enum = enum
        super().__init__(f'{actual!r} is not a valid {enum.__name__}', actual=actual, **kwargs)


class UnrepresentableValueError(ValidationError):
    '''The value can't be encoded in the wire representation of its field.'''
    pass


class StorageError(BlobstructException):
    pass


class StorageExhausted(StorageError):
    '''The backend could not supply or accept the requested bytes.'''
    pass
