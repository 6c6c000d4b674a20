"""
Tests for UNA separator resolution
"""

from edifact_audit.models import Separators
from edifact_audit.separators import (
    DEFAULT_SEPARATORS, SeparatorResolver, describe, generate_una, resolve_separators,
)


ROUND_TRIP_BODIES = [":+.? '", ":+.?*'", "|^,\\#~", "!*;/&$"]


def test_round_trip():
    """Resolving a generated UNA header gives the same separators back"""
    print("\n1. Testing generate/resolve round trip...")
    for body in ROUND_TRIP_BODIES:
        separators = Separators(
            sub_element=body[0], element=body[1], decimal=body[2],
            release=body[3], reserved=body[4], terminator=body[5],
        )
        una = generate_una(separators)
        assert una == "UNA" + body, f"Unexpected UNA header {una!r}"

        resolved = resolve_separators(una)
        assert resolved == separators, f"Round trip failed for {body!r}: {resolved}"
        assert resolved.una_present is True, "A header that was read is flagged as present"

        followed = resolve_separators(una + "\nUNB" + body[1] + "IATA" + body[0] + "1" + body[5])
        assert followed == separators, f"Round trip with UNB failed for {body!r}: {followed}"

    assert resolve_separators(generate_una(Separators())) == Separators()
    assert resolve_separators(generate_una(DEFAULT_SEPARATORS)) == DEFAULT_SEPARATORS
    print("   [PASS] Round trip passed")


def test_equality_ignores_una_flag():
    declared = Separators(una_present=True)
    assert declared == Separators(), "Same characters compare equal whether or not a UNA was read"
    assert hash(declared) == hash(Separators())
    assert Separators(element="^") != Separators()


def test_defaults_without_una():
    print("\n2. Testing defaults when no UNA is present...")
    for content in (None, "", "   \n  ", "no edifact content here"):
        assert resolve_separators(content) == DEFAULT_SEPARATORS, f"Expected defaults for {content!r}"

    defaults = DEFAULT_SEPARATORS.as_tuple()
    assert defaults == (":", "+", ".", "?", "*", "'"), f"Unexpected defaults {defaults}"
    assert DEFAULT_SEPARATORS.una_present is False
    print("   [PASS] Defaults passed")


def test_unb_fallback():
    print("\n3. Testing UNB based fallback...")
    standard = resolve_separators("UNB+IATA:1+EK+NR+250828:1235+00000000000149++PNRGOV'\nUNH+1'")
    assert standard == DEFAULT_SEPARATORS, f"Standard UNB should resolve to defaults, got {standard}"

    custom = resolve_separators("UNB^IATA:1^EK^NR~\nUNH^1~")
    assert custom.element == "^", f"Expected element '^', got {custom.element!r}"
    assert custom.terminator == "~", f"Expected terminator '~', got {custom.terminator!r}"
    assert custom.una_present is False
    print("   [PASS] UNB fallback passed")


def test_short_una():
    print("\n4. Testing short UNA header...")
    resolved = resolve_separators("UNA:+.?'\nUNB+IATA:1+EK+NR'")
    assert resolved.element == "+", f"Unexpected element {resolved.element!r}"
    assert resolved.sub_element == ":", f"Unexpected sub-element {resolved.sub_element!r}"
    assert resolved.terminator == "'", f"Unexpected terminator {resolved.terminator!r}"
    assert resolved.una_present is True
    print("   [PASS] Short UNA passed")


def test_invalid_una_never_raises():
    print("\n5. Testing inconsistent UNA headers...")
    colliding = resolve_separators("UNA+++?*'UNB+IATA:1'")
    assert colliding == DEFAULT_SEPARATORS, f"Colliding delimiters should give defaults, got {colliding}"

    truncated = resolve_separators("UNA")
    assert truncated == DEFAULT_SEPARATORS, f"Bare UNA should give defaults, got {truncated}"
    print("   [PASS] Inconsistent headers passed")


def test_search_window():
    print("\n6. Testing the UNA search window...")
    content = "noise\n" * 9 + "UNA|^,\\#~"
    assert resolve_separators(content) == DEFAULT_SEPARATORS, "UNA past the search window must be ignored"

    wide = SeparatorResolver(max_lines=12).resolve(content)
    assert wide.element == "^", f"Wider window should find the UNA, got {wide}"
    print("   [PASS] Search window passed")


def test_describe():
    text = describe(DEFAULT_SEPARATORS)
    assert "UNA:+.?*'" in text, f"describe() should include the UNA header: {text}"
    assert "Terminator=''' (ASCII 39)" in text, f"describe() should name the terminator: {text}"


def main():
    """Run all tests"""
    print("\n" + "=" * 60)
    print("SEPARATOR RESOLUTION TESTS")
    print("=" * 60)

    try:
        test_round_trip()
        test_equality_ignores_una_flag()
        test_defaults_without_una()
        test_unb_fallback()
        test_short_una()
        test_invalid_una_never_raises()
        test_search_window()
        test_describe()
        print("\nALL TESTS PASSED!")
    except AssertionError as e:
        print(f"\n[FAIL] TEST FAILED: {e}")
        return 1
    return 0


if __name__ == "__main__":
    exit(main())
