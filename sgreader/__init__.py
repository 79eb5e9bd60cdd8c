"""Reader for the SG2/SG3 sprite archives of the Sierra city-building games.

Typical use::

    archive = sgreader.load_metadata("C3.sg2")
    image = archive.load_image(11, sgreader.PilImageSink)
"""

from .archive import SgArchive, SgHeader, load_fully, load_metadata
from .bitmap import SgBitmap
from .decode import decode_image
from .errors import (
    FootprintMismatchError,
    HeaderSizeMismatchError,
    ImageDataLengthMismatchError,
    MalformedArchiveError,
    SgFormatError,
    TextDecodeError,
    TruncatedDataError,
    UnknownImageTypeError,
)
from .image import SgAlphaMask, SgImage
from .sink import ArraySink, ImageSink, ImageSinkFactory, PilImageSink, RgbaBufferSink, unpack_555
