"""Thin wrapper over the macOS general pasteboard.

AppKit is imported when a handle is created so the rest of the package can be
imported (and tested) without PyObjC.
"""


class ClipboardEmpty(Exception):
    """The pasteboard holds nothing in the requested format."""


class Clipboard:
    def __init__(self):
        from AppKit import NSPasteboard

        self._pasteboard = NSPasteboard.generalPasteboard()
        if self._pasteboard is None:
            raise RuntimeError("General pasteboard is not available")

    def get_text(self) -> str:
        from AppKit import NSPasteboardTypeString

        text = self._pasteboard.stringForType_(NSPasteboardTypeString)
        if text is None:
            raise ClipboardEmpty("No text on the pasteboard")
        return str(text)

    def get_png(self) -> bytes:
        from AppKit import NSPasteboardTypePNG

        data = self._pasteboard.dataForType_(NSPasteboardTypePNG)
        if data is None:
            raise ClipboardEmpty("No PNG image on the pasteboard")
        return bytes(data)

    def set_text(self, text: str) -> None:
        from AppKit import NSPasteboardTypeString

        self._pasteboard.clearContents()
        if not self._pasteboard.setString_forType_(text, NSPasteboardTypeString):
            raise RuntimeError("Pasteboard rejected the text")

    def set_png(self, png_bytes: bytes) -> None:
        from AppKit import NSPasteboardTypePNG
        from Foundation import NSData

        data = NSData.dataWithBytes_length_(png_bytes, len(png_bytes))
        self._pasteboard.clearContents()
        if not self._pasteboard.setData_forType_(data, NSPasteboardTypePNG):
            raise RuntimeError("Pasteboard rejected the image")
