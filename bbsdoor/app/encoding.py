import codecs
import unicodedata
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

ESC = "\x1b"
CSI = "\x1b["

# Glyphs whose CP437 position the standard codec does not cover (it maps
# 0x00-0x1F to control characters). Positions that the remote terminal
# would act on (BEL, BS, LF, CR, SUB, ESC) are left out.
UNICODE_TO_CP437: Dict[str, int] = {
    # Box drawing - single line
    "─": 196, "│": 179, "┌": 218, "┐": 191,
    "└": 192, "┘": 217, "├": 195, "┤": 180,
    "┬": 194, "┴": 193, "┼": 197,
    # Box drawing - double line
    "═": 205, "║": 186, "╔": 201, "╗": 187,
    "╚": 200, "╝": 188, "╠": 204, "╣": 185,
    "╦": 203, "╩": 202, "╬": 206,
    # Box drawing - mixed
    "╒": 213, "╓": 214, "╘": 212, "╙": 211,
    "╞": 198, "╟": 199, "╤": 209, "╥": 210,
    "╧": 207, "╨": 208, "╪": 216, "╫": 215,
    "╕": 184, "╖": 183, "╛": 190, "╜": 189,
    # Shade blocks
    "░": 176, "▒": 177, "▓": 178, "█": 219,
    "▄": 220, "▀": 223, "▌": 221, "▐": 222, "■": 254,
    # Symbols
    "☺": 1, "☻": 2, "♥": 3, "♦": 4, "♣": 5, "♠": 6,
    "♂": 11, "♀": 12, "♫": 14, "☼": 15,
    "►": 16, "◄": 17, "↕": 18, "‼": 19, "¶": 20, "§": 21,
    "▬": 22, "↨": 23, "↑": 24, "↓": 25, "∟": 28, "↔": 29,
    "▲": 30, "▼": 31, "•": 249, "∙": 249, "·": 250,
    # Game glyphs without a CP437 cell
    "†": 197, "✝": 197, "⚔": 197, "✗": 158, "♔": 2, "⚑": 16, "⛓": 45,
}

# Nearest ASCII for glyphs that have no safe CP437 cell
ASCII_FALLBACK: Dict[str, str] = {
    "→": ">", "←": "<", "◘": "o", "○": "o", "◙": "o", "♪": "*",
    "“": '"', "”": '"', "‘": "'", "’": "'", "…": "...",
    "–": "-", "—": "-", "✓": "v", "★": "*", "☆": "*",
}

PLACEHOLDER = b"?"

# SGR parameters: base colours are normal intensity, bright ones bold.
# Bold is used rather than the 90-97 range, which ANSI.SYS era
# terminals do not understand.
ANSI_COLORS: Dict[str, str] = {
    "black": "0;30",
    "red": "0;31",
    "green": "0;32",
    "yellow": "0;33",
    "blue": "0;34",
    "magenta": "0;35",
    "cyan": "0;36",
    "white": "0;37",
    "bright_black": "1;30",
    "bright_red": "1;31",
    "bright_green": "1;32",
    "bright_yellow": "1;33",
    "bright_blue": "1;34",
    "bright_magenta": "1;35",
    "bright_cyan": "1;36",
    "bright_white": "1;37",
    "reset": "0",
}

COLOR_ALIASES: Dict[str, str] = {
    "gray": "white",
    "grey": "white",
    "light_gray": "white",
    "dark_gray": "bright_black",
    "darkgray": "bright_black",
    "darkgrey": "bright_black",
    "dark_red": "red",
    "darkred": "red",
    "dark_green": "green",
    "darkgreen": "green",
    "dark_yellow": "yellow",
    "darkyellow": "yellow",
    "brown": "yellow",
    "dark_blue": "blue",
    "darkblue": "blue",
    "dark_magenta": "magenta",
    "darkmagenta": "magenta",
    "dark_cyan": "cyan",
    "darkcyan": "cyan",
    "default": "reset",
}


def normalize_color(name: Optional[str]) -> Optional[str]:
    """Canonical colour name, or None when unknown."""
    if not name:
        return None
    key = name.strip().lower().replace("-", "_").replace(" ", "_")
    key = COLOR_ALIASES.get(key, key)
    return key if key in ANSI_COLORS else None


def parse_markup(text: str) -> List[Tuple[str, Optional[str]]]:
    """Split ``[red]text[/]`` markup into (content, colour) segments.

    Brackets that do not hold a known colour or a closing tag are kept
    as literal text.
    """
    segments: List[Tuple[str, Optional[str]]] = []
    current: List[str] = []
    color: Optional[str] = None
    i = 0

    while i < len(text):
        if text[i] == "[":
            end = text.find("]", i + 1)
            if end > i:
                tag = text[i + 1:end].lower()
                if tag in ("/", "/color") or normalize_color(tag):
                    if current:
                        segments.append(("".join(current), color))
                        current = []
                    color = None if tag.startswith("/") else normalize_color(tag)
                    i = end + 1
                    continue
        current.append(text[i])
        i += 1

    if current:
        segments.append(("".join(current), color))
    return segments


@dataclass(frozen=True)
class CharacterEncoder:
    """Stateless Unicode/colour to terminal byte translation.

    ``charset`` is the byte encoding the remote terminal expects; UTF-8
    turns the encoder into a pass-through. ``color`` is the transport's
    colour capability; without it colour requests produce no bytes.
    Instances hold no session state and can be shared freely.
    """

    charset: str = "cp437"
    color: bool = True

    def __post_init__(self):
        try:
            name = codecs.lookup(self.charset).name
        except LookupError:
            name = "cp437"
        object.__setattr__(self, "charset", name)

    @property
    def is_utf8(self) -> bool:
        return self.charset == "utf-8"

    def encode_text(self, text: str) -> bytes:
        if self.is_utf8:
            return text.encode("utf-8", errors="replace")
        return b"".join(self._encode_char(ch) for ch in text)

    def _encode_char(self, ch: str) -> bytes:
        mapped = UNICODE_TO_CP437.get(ch)
        if mapped is not None and self.charset == "cp437":
            return bytes((mapped,))
        if ord(ch) < 128:
            return ch.encode("ascii")
        try:
            return ch.encode(self.charset)
        except UnicodeEncodeError:
            pass
        fallback = ASCII_FALLBACK.get(ch)
        if fallback is not None:
            return fallback.encode("ascii")
        folded = unicodedata.normalize("NFKD", ch).encode("ascii", errors="ignore")
        return folded or PLACEHOLDER

    def encode_color(self, name: str) -> bytes:
        if not self.color:
            return b""
        key = normalize_color(name)
        if key is None:
            return b""
        return f"{CSI}{ANSI_COLORS[key]}m".encode("ascii")

    def reset(self) -> bytes:
        return self.encode_color("reset")

    def render_markup(self, text: str, base_color: Optional[str] = None) -> bytes:
        """Encode text carrying inline colour markup.

        Uncoloured segments keep whatever colour is active; after a tagged
        segment the colour returns to ``base_color`` (or a reset).
        """
        out = bytearray()
        tagged = False
        for content, color in parse_markup(text):
            if color:
                out += self.encode_color(color)
                tagged = True
            elif tagged:
                out += self.encode_color(base_color or "reset")
                tagged = False
            out += self.encode_text(content)
        if tagged:
            out += self.encode_color(base_color or "reset")
        return bytes(out)

    def clear_screen(self) -> bytes:
        return f"{CSI}2J{CSI}1;1H".encode("ascii")

    def decoder(self) -> codecs.IncrementalDecoder:
        """Incremental decoder for keyboard input in this charset."""
        return codecs.getincrementaldecoder(self.charset)(errors="replace")


def encoder_for(
    capabilities,
    legacy_encoding: str = "cp437",
    force_utf8: bool = False,
    color_allowed: bool = True,
) -> CharacterEncoder:
    """Pick the encoder matching a transport's capabilities.

    ``color_allowed`` is False when the caller's emulation is plain ASCII.
    """
    charset = "utf-8" if (capabilities.utf8 or force_utf8) else legacy_encoding
    return CharacterEncoder(charset=charset, color=capabilities.color and color_allowed)
