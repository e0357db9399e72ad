"""
Character encoder tests.
"""

import pytest

from bbsdoor.app.encoding import (
    ANSI_COLORS,
    CharacterEncoder,
    encoder_for,
    normalize_color,
    parse_markup,
)
from bbsdoor.app.transport.base import TransportCapabilities


class TestTextEncoding:
    """Unicode to terminal bytes"""

    def test_ascii_passthrough(self):
        assert CharacterEncoder().encode_text("Hello, world!") == b"Hello, world!"

    def test_box_drawing(self):
        enc = CharacterEncoder()
        assert enc.encode_text("╔═╗") == bytes([201, 205, 187])
        assert enc.encode_text("░▒▓█") == bytes([176, 177, 178, 219])

    def test_low_glyphs_use_table(self):
        assert CharacterEncoder().encode_text("♥►") == bytes([3, 16])

    def test_codec_covers_latin(self):
        assert CharacterEncoder().encode_text("é") == "é".encode("cp437")

    def test_accents_fold_to_ascii(self):
        # Not in CP437
        assert CharacterEncoder().encode_text("Ő") == b"O"

    def test_ascii_fallbacks(self):
        assert CharacterEncoder().encode_text("→…") == b">..."

    def test_unmappable_becomes_placeholder(self):
        assert CharacterEncoder().encode_text("漢") == b"?"

    def test_total_over_sampled_code_points(self):
        enc = CharacterEncoder()
        samples = list(range(0, 0x3000, 7)) + list(range(0xD800, 0xE000, 97)) + [0x1F600, 0x10FFFF]
        for cp in samples:
            out = enc.encode_text(chr(cp))
            assert isinstance(out, bytes)
            assert len(out) >= 1

    def test_utf8_passthrough(self):
        enc = CharacterEncoder(charset="utf-8")
        assert enc.is_utf8
        assert enc.encode_text("╔ Zoë 漢") == "╔ Zoë 漢".encode("utf-8")

    def test_utf8_lone_surrogate(self):
        assert CharacterEncoder(charset="utf-8").encode_text("\ud800") == b"?"

    def test_unknown_charset_falls_back(self):
        assert CharacterEncoder(charset="no-such-codec").charset == "cp437"

    def test_other_legacy_charset(self):
        enc = CharacterEncoder(charset="cp866")
        assert enc.encode_text("Привет") == "Привет".encode("cp866")

    def test_decoder_replaces_bad_bytes(self):
        decoder = CharacterEncoder(charset="utf-8").decoder()
        assert decoder.decode(b"\xff", final=True) == "�"


class TestColours:
    """Colour names to SGR"""

    def test_base_and_bright(self):
        enc = CharacterEncoder()
        assert enc.encode_color("red") == b"\x1b[0;31m"
        assert enc.encode_color("bright_red") == b"\x1b[1;31m"
        assert enc.reset() == b"\x1b[0m"

    def test_aliases(self):
        assert normalize_color("gray") == "white"
        assert normalize_color("Dark-Gray") == "bright_black"
        assert normalize_color("brown") == "yellow"
        assert normalize_color("nope") is None

    def test_unknown_name_is_silent(self):
        assert CharacterEncoder().encode_color("mauve") == b""

    def test_colour_disabled(self):
        enc = CharacterEncoder(color=False)
        for name in ANSI_COLORS:
            assert enc.encode_color(name) == b""

    def test_every_colour_is_sgr(self):
        enc = CharacterEncoder()
        for name in ANSI_COLORS:
            code = enc.encode_color(name)
            assert code.startswith(b"\x1b[") and code.endswith(b"m")


class TestMarkup:
    def test_parse(self):
        assert parse_markup("a [red]b[/] c") == [("a ", None), ("b", "red"), (" c", None)]

    def test_unknown_brackets_are_literal(self):
        assert parse_markup("[Y/n] [x]") == [("[Y/n] [x]", None)]

    def test_render(self):
        out = CharacterEncoder().render_markup("[green]ok[/] done", base_color="cyan")
        assert out == b"\x1b[0;32mok\x1b[0;36m done"

    def test_render_without_tags_emits_no_colour(self):
        assert CharacterEncoder().render_markup("plain [text]") == b"plain [text]"

    def test_render_without_colour(self):
        assert CharacterEncoder(color=False).render_markup("[red]hi[/]") == b"hi"


class TestEncoderSelection:
    @pytest.mark.parametrize("utf8,force,expected", [
        (False, False, "cp437"),
        (True, False, "utf-8"),
        (False, True, "utf-8"),
    ])
    def test_charset(self, utf8, force, expected):
        caps = TransportCapabilities(utf8=utf8)
        assert encoder_for(caps, force_utf8=force).charset == expected

    def test_colour_needs_transport_and_emulation(self):
        assert encoder_for(TransportCapabilities(color=True)).color
        assert not encoder_for(TransportCapabilities(color=False)).color
        assert not encoder_for(TransportCapabilities(color=True), color_allowed=False).color
