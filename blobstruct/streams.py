'''
Storage backends: the byte-level primitives the codec reads from and writes to.

Every backend keeps an implicit cursor advanced by load(), store() and skip().
Random access backends (seekable is True) can also move it backward via seek();
sequential backends can only move forward.
'''
import io
import logging
import os

from .exceptions import StorageExhausted, StorageError


logger = logging.getLogger(__name__)


class Backend(object):
    '''Minimal capability surface a storage must offer'''

    seekable = False

    def load(self, size: int) -> bytes:
        raise NotImplementedError(f"method {self.__class__.__name__}.load() not implemented")

    def store(self, data: bytes) -> None:
        raise NotImplementedError(f"method {self.__class__.__name__}.store() not implemented")

    def skip(self, size: int) -> None:
        '''Move the cursor forward of "size" bytes'''
        if size < 0:
            raise StorageError(f'{self.__class__.__name__} can only skip forward')

        self.seek(size)

    def seek(self, offset: int) -> None:
        '''Move the cursor of "offset" bytes with respect to the actual position'''
        raise StorageError(f'{self.__class__.__name__} is not seekable')

    def tell(self) -> int:
        raise StorageError(f'{self.__class__.__name__} is not seekable')


class MemoryStorage(Backend):
    '''Backend operating on a block of memory.

    If a bytearray (or a memoryview over writable memory) is passed the stores
    modify it in place, otherwise the data is copied. All the accesses are bounds checked.
    '''

    seekable = True

    def __init__(self, buffer=b'', offset=0):
        if isinstance(buffer, (bytearray, memoryview)):
            self.buffer = buffer
        else:
            self.buffer = bytearray(buffer)

        if not 0 <= offset <= len(self.buffer):
            raise StorageExhausted(f'offset {offset} outside a buffer of {len(self.buffer)} bytes')

        self.current = offset

    @classmethod
    def allocate(cls, size: int) -> "MemoryStorage":
        return cls(bytearray(size))

    def __repr__(self):
        return f'<{self.__class__.__name__}(size={len(self.buffer)}, current={self.current})>'

    def __len__(self):
        return len(self.buffer)

    def _check(self, size):
        if size < 0 or self.current + size > len(self.buffer):
            raise StorageExhausted(
                f'requested {size} bytes at offset {self.current} of a buffer of {len(self.buffer)} bytes')

    def load(self, size: int) -> bytes:
        self._check(size)
        data = bytes(self.buffer[self.current:self.current + size])
        self.current += size

        return data

    def store(self, data: bytes) -> None:
        size = len(data)
        self._check(size)
        self.buffer[self.current:self.current + size] = data
        self.current += size

    def seek(self, offset: int) -> None:
        position = self.current + offset
        if not 0 <= position <= len(self.buffer):
            raise StorageExhausted(f'seeking to {position} outside a buffer of {len(self.buffer)} bytes')

        self.current = position

    def tell(self) -> int:
        return self.current

    def getvalue(self) -> bytes:
        return bytes(self.buffer)


class StreamStorage(Backend):
    '''Sequential backend around a file-like object: it reads and writes
    blocking, and it can't go back.

    Note this translates each field access to a call on the underlying stream,
    so for performance it's better to read the data into a MemoryStorage.
    '''

    def __init__(self, stream):
        self.stream = stream
        self.position = 0

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.stream!r}, position={self.position})>'

    def _read(self, size):
        chunks = []
        remaining = size
        while remaining:
            chunk = self.stream.read(remaining)
            if not chunk:
                break
            chunks.append(chunk)
            remaining -= len(chunk)

        return b''.join(chunks)

    def load(self, size: int) -> bytes:
        data = self._read(size)
        self.position += len(data)
        if len(data) != size:
            raise StorageExhausted(f'stream exhausted: requested {size} bytes, obtained {len(data)}')

        return data

    def store(self, data: bytes) -> None:
        written = self.stream.write(data)
        # raw streams are allowed to write less than asked
        if written is not None and written != len(data):
            self.position += written
            raise StorageExhausted(f'stream accepted {written} bytes out of {len(data)}')

        self.position += len(data)

    def skip(self, size: int) -> None:
        if size < 0:
            raise StorageError(f'{self.__class__.__name__} can only skip forward')

        readable = self.stream.readable() if hasattr(self.stream, 'readable') else hasattr(self.stream, 'read')
        if readable:
            self.load(size)
        else:
            # for output we fill the gap
            self.store(b'\x00' * size)

    def tell(self) -> int:
        '''Number of bytes consumed or produced so far'''
        return self.position


class FileStorage(Backend):
    '''Random access backend around a seekable file object or a path'''

    seekable = True

    def __init__(self, obj, flags='rb'):
        self._owned = isinstance(obj, (str, os.PathLike))
        if self._owned:
            logger.debug('opening path \'%s\'' % obj)
            obj = open(obj, flags)

        self.obj = obj

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.obj!r})>'

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self):
        if self._owned:
            self.obj.close()

    def load(self, size: int) -> bytes:
        data = self.obj.read(size)
        if len(data) != size:
            raise StorageExhausted(f'file exhausted: requested {size} bytes, obtained {len(data)}')

        return data

    def store(self, data: bytes) -> None:
        try:
            written = self.obj.write(data)
        except io.UnsupportedOperation as e:
            raise StorageError(f'{self.obj!r} is not writable') from e

        if written is not None and written != len(data):
            raise StorageExhausted(f'file accepted {written} bytes out of {len(data)}')

    def seek(self, offset: int) -> None:
        position = self.obj.tell() + offset
        if position < 0:
            raise StorageExhausted(f'seeking to {position} before the start of the file')

        self.obj.seek(position, io.SEEK_SET)

    def tell(self) -> int:
        return self.obj.tell()


def open_storage(obj, flags='rb') -> Backend:
    '''Here we normalize the object in order to be accessed as a storage:
    raw data goes in memory, a path is opened, a file object is wrapped
    depending on its capabilities.'''
    if isinstance(obj, Backend):
        return obj

    if isinstance(obj, (bytes, bytearray, memoryview)):
        return MemoryStorage(obj)

    if isinstance(obj, (str, os.PathLike)):
        return FileStorage(obj, flags=flags)

    if hasattr(obj, 'seekable') and obj.seekable():
        return FileStorage(obj)

    if hasattr(obj, 'read') or hasattr(obj, 'write'):
        return StreamStorage(obj)

    raise ValueError('\'%s\' is the wrong kind of object to use as storage' % obj.__class__.__name__)
