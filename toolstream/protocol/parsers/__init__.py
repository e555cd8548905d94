from .xml_tools import XmlToolParser
from .callbacks import XmlStreamParser

__all__ = ["XmlToolParser", "XmlStreamParser"]
