import logging
import os

import pytest

from bmp import file_data


logging.basicConfig(level=logging.DEBUG if 'DEBUG' in os.environ else logging.INFO)


@pytest.fixture
def bmp_data():
    '''The headers of a 2x1 pixels, 24 bits, uncompressed image'''
    return file_data()
