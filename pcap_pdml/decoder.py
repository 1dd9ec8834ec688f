"""
Decoder for PDML, the XML packet description emitted by the external decoder.

Output is fed incrementally as it is drained from the decoder process and
projected into a tree of AttributeNodes that mirrors the markup exactly:
element names, attributes in source order, children in source order, at any
nesting depth.

    <pdml version="0" creator="wireshark/2.6.1" capture_file="...">
      <packet>
        <proto name="ip" ...>
          <field name="ip.flags" ...>
            <field name="ip.flags.mf" .../>
          </field>
        </proto>
      </packet>
    </pdml>
"""

import xml.etree.ElementTree as ET
from collections.abc import Iterable
from typing import BinaryIO

from pcap_common.errors import ErrorKind, PcapError
from pcap_common.models import AttributeDocument, AttributeNode

ROOT_TAG = "pdml"
CHUNK_SIZE = 64 * 1024


class _NodeBuilder:
    """XMLParser target that builds AttributeNodes as elements open and close."""

    def __init__(self):
        self._stack: list[AttributeNode] = []
        self._root: AttributeNode | None = None

    def start(self, tag: str, attrib: dict[str, str]) -> None:
        node = AttributeNode(name=tag, attributes=dict(attrib))
        if self._stack:
            self._stack[-1].children.append(node)
        elif self._root is None:
            self._root = node
        self._stack.append(node)

    def end(self, tag: str) -> None:
        self._stack.pop()

    def close(self) -> AttributeNode | None:
        return self._root


class PdmlDecoder:
    """
    Incremental PDML parser.

    Usage:
        decoder = PdmlDecoder()
        for chunk in chunks:
            decoder.feed(chunk)
        document = decoder.close()
    """

    def __init__(self):
        self._parser = ET.XMLParser(target=_NodeBuilder())
        self._received = 0

    def feed(self, data: bytes) -> None:
        """
        Feed a chunk of decoder output.

        Raises:
            PcapError: PARSE as soon as the markup is known to be malformed
        """
        if not data:
            return
        self._received += len(data)
        try:
            self._parser.feed(data)
        except ET.ParseError as e:
            raise PcapError(ErrorKind.PARSE, f"Malformed decoder output: {e}") from e

    def close(self) -> AttributeDocument:
        """
        Finish parsing and build the document.

        Raises:
            PcapError: PARSE if the output was empty, truncated or not PDML
        """
        if self._received == 0:
            raise PcapError(ErrorKind.PARSE, "Decoder produced no output")
        try:
            root = self._parser.close()
        except ET.ParseError as e:
            raise PcapError(ErrorKind.PARSE, f"Malformed decoder output: {e}") from e
        if root.name != ROOT_TAG:
            raise PcapError(
                ErrorKind.PARSE, f"Expected <{ROOT_TAG}> document, got <{root.name}>"
            )
        return AttributeDocument(root=root)


def parse(source: bytes | BinaryIO | Iterable[bytes]) -> AttributeDocument:
    """
    Parse a complete PDML document.

    Args:
        source: The whole document, a binary stream, or an iterable of chunks

    Returns:
        The decoded document

    Raises:
        PcapError: PARSE if the input is not a well-formed PDML document
    """
    decoder = PdmlDecoder()
    if isinstance(source, (bytes, bytearray)):
        decoder.feed(bytes(source))
    elif hasattr(source, "read"):
        while chunk := source.read(CHUNK_SIZE):
            decoder.feed(chunk)
    else:
        for chunk in source:
            decoder.feed(chunk)
    return decoder.close()
