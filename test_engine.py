"""
End-to-end tests for the audit engine over log files
"""

import pytest

from edifact_audit import AuditConfig, AuditEngine, MatchingStrategy
from edifact_audit.exceptions import ConfigurationError


INPUT_ENTRY = """INFO [2025-08-28T12:35:09,873][pnrGovResponseListenerContainer-28][ID:abc] [trace.id:e0636a4e-1111] - PNRGOV_MESSAGE_HANDLER.Request - MQ Message received from [topic://SPLIT.PNRGOV_PNR_PUSH] Variant [RAW_TEXT] Message body [
UNA:+.?*'
UNB+IATA:1+EK+NR+250828:1235+00000000000149++PNRGOV'
UNG+PNRGOV+EK+NR+250828:1235+00000000000150+IA+11:1'
UNH+00000000000154+PNRGOV:11:1:IA+EK0160/290825/1435+{part}'
MSG+:22'
ORG+EK:DXB'
TVL+290825:1435:290825:2325+OSL+DXB+EK+0160'
EQN+2'
SRC'
RCI+EK:ABC123'
TIF+DOE:JOHN'
SRC'
RCI+EK:XYZ789'
TIF+SMITH:ANNA'
UNT+13+00000000000154'
UNE+1+00000000000150'
UNZ+1+{unz}'
]
"""

OUTPUT_ENTRY = """INFO [2025-08-28T12:35:10,100][main][ID:def] [trace.id:f1111111-2222] - Forward.BUSINESS_RULES_PROCESSOR - MQ Message sent to [queue://TO.NO.PNR.OUT] Message body [UNA:+.?*'UNB+IATA:1+EK+NR+250828:1236+00000000000160++PNRGOV'UNH+00000000000170+PNRGOV:11:1:IA+EK0160/290825/1435+01'TVL+290825:1435:290825:2325+OSL+DXB+EK+0160'SRC'RCI+EK:ABC123'TIF+DOE:JOHN'UNT+6+00000000000170'UNZ+1+00000000000160']
"""


def make_log(part="01:F", unz="00000000000149"):
    return INPUT_ENTRY.format(part=part, unz=unz) + OUTPUT_ENTRY


def make_engine(**overrides):
    return AuditEngine(AuditConfig(enable_logging=False, **overrides))


def test_audit_directory(tmp_path):
    print("\n1. Testing audit over a log directory...")
    (tmp_path / "app.log").write_text(make_log(), encoding="utf-8")
    (tmp_path / "notes.md").write_text("not a log", encoding="utf-8")

    result = make_engine().audit(tmp_path)

    assert len(result.processed_files) == 1, f"Only the .log file should be read: {result.processed_files}"
    assert len(result.messages) == 2
    assert result.errors == [], f"Unexpected errors {result.errors}"

    reconciliation = result.reconciliation
    assert len(reconciliation.input_population) == 2
    assert len(reconciliation.output_population) == 1
    assert reconciliation.processed_keys == {"ABC123|DOEJOHN"}
    assert reconciliation.dropped_keys == {"XYZ789|SMITHANNA"}
    assert reconciliation.added_keys == set()
    assert reconciliation.dropped_pnr_keys == {"XYZ789"}
    assert reconciliation.flight_comparison.is_match, reconciliation.flight_comparison.differences

    assert all(group.is_complete for group in result.multipart_groups)
    frame = result.to_dataframe('dropped')
    assert list(frame['name']) == ["SMITH/ANNA"]
    assert result.summary()['dropped'] == 1
    print("   [PASS] Directory audit passed")


def test_audit_single_file_and_duplicate_logs(tmp_path):
    first = tmp_path / "node1.log"
    second = tmp_path / "node2.log"
    first.write_text(make_log(), encoding="utf-8")
    second.write_text(make_log(), encoding="utf-8")

    single = make_engine().audit(first)
    assert len(single.processed_files) == 1

    both = make_engine().audit(tmp_path)
    assert len(both.processed_files) == 2
    assert len(both.messages) == 2, "Messages repeated across logs are kept once"
    assert any("duplicate message" in info for info in both.infos), both.infos


def test_matching_strategy_from_config(tmp_path):
    (tmp_path / "app.log").write_text(make_log(), encoding="utf-8")
    result = make_engine(matching_strategy=MatchingStrategy.NAME_DOC_DOB).audit(tmp_path)
    assert result.reconciliation.strategy == MatchingStrategy.NAME_DOC_DOB
    assert result.reconciliation.processed_keys == {"DOE JOHN|NODOC|NODOB"}


def test_incomplete_multipart_reported(tmp_path):
    print("\n2. Testing incomplete multipart reporting...")
    (tmp_path / "app.log").write_text(make_log(part="01:C"), encoding="utf-8")
    result = make_engine().audit(tmp_path)

    incomplete = [g for g in result.multipart_groups if not g.is_complete]
    assert len(incomplete) == 1, "The incomplete group must be kept"
    assert any("Incomplete multipart message 00000000000154" in w for w in result.warnings), result.warnings
    assert result.summary()['incomplete_groups'] == 1
    print("   [PASS] Incomplete multipart reporting passed")


def test_envelope_mismatch_strict_and_lenient(tmp_path):
    (tmp_path / "app.log").write_text(make_log(unz="99999999999999"), encoding="utf-8")

    lenient = make_engine().audit(tmp_path)
    assert any("Interchange reference mismatch" in w for w in lenient.warnings), lenient.warnings
    assert lenient.errors == []

    strict = make_engine(strict_validation=True).audit(tmp_path)
    assert any("Interchange reference mismatch" in e for e in strict.errors), strict.errors
    assert len(strict.messages) == 2, "Strict validation records errors without dropping messages"


def test_target_flight_filter(tmp_path):
    (tmp_path / "app.log").write_text(make_log(), encoding="utf-8")

    matching = make_engine(target_flight="EK160").audit(tmp_path)
    assert len(matching.messages) == 2

    other = make_engine(target_flight="QR0001").audit(tmp_path)
    assert other.messages == []
    assert other.reconciliation.input_population == []


def test_missing_path_and_8bit_logs(tmp_path):
    missing = make_engine().audit(tmp_path / "absent")
    assert any("Log path not found" in e for e in missing.errors), missing.errors

    (tmp_path / "legacy.txt").write_bytes(make_log().replace("SMITH", "M\xdcLLER").encode("latin-1"))
    result = make_engine().audit(tmp_path / "legacy.txt")
    names = [p.display_name for p in result.reconciliation.input_population]
    assert "M\xdcLLER/ANNA" in names, names

    with pytest.raises(ConfigurationError):
        make_engine().audit(None)


def test_api_audit_text():
    print("\n3. Testing an API passenger list...")
    log = (
        "INFO [2025-08-29T08:00:00,000][api] - API.Request - received Message body ["
        "UNA:+.?*'UNB+UNOA:4+EK+NO+250829:0800+REF1'UNH+PAX1+PAXLST:D:05B:UN:IATA+API01+01:F'"
        "BGM+745'TDT+20+EK0160'LOC+125+OSL'DTM+189:2508291435:201'LOC+87+DXB'DTM+232:2508292325:201'"
        "NAD+FL+++DOE:JOHN'DTM+329:850101'DOC+P:110:111+P1234567'"
        "NAD+FL+++ROE:JANE'"
        "NAD+XX+++BAD:PARTY'DOC+P+X1'"
        "UNT+12+PAX1'UNZ+1+REF1']\n"
    )
    result = make_engine(matching_strategy=MatchingStrategy.NAME_DOC_DOB).audit_text(log, source="api.log")
    message = result.messages[0]
    assert message.flight_facts.full_flight_number == "EK0160"
    assert message.flight_facts.route == "OSL-DXB"

    population = result.reconciliation.input_population
    assert [p.display_name for p in population] == ["DOE JOHN", "ROE JANE"]
    assert population[0].document_number == "P1234567"
    assert population[0].date_or_key_field == "850101"
    assert any("ROE JANE: Missing DOC and/or DTM" in w for w in result.warnings), result.warnings
    assert any("Invalid NAD Segment Found - XX" in w for w in result.warnings), result.warnings
    print("   [PASS] API passenger list passed")


CUSTOM_SEPARATOR_ENTRY = (
    "INFO [2025-08-28T12:35:09,873][main] - PNRGOV.Request - MQ Message received Message body ["
    "UNA|^,\\#~UNB^IATA|1^EK^NR^250828|1235^REF9~"
    "UNH^1^PNRGOV|11|1|IA^EK0160/290825/1435^01|F~TVL^290825|1435|290825|2325^OSL^DXB^EK^0160~"
    "SRC~RCI^EK|ABC123~TIF^DOE|JOHN~UNT^6^1~"
    "UNH^2^PNRGOV|11|1|IA^EK0160/290825/1435^01|F~TVL^290825|1435|290825|2325^OSL^DXB^EK^0160~"
    "SRC~RCI^EK|XYZ789~TIF^ROE|A\\^B~UNT^6^2~"
    "UNZ^1^REF9~]\n"
)

DEFAULT_SEPARATOR_ENTRY = (
    "INFO [2025-08-28T12:35:10,100][main] - Forward.BUSINESS_RULES_PROCESSOR - MQ Message sent to "
    "[queue://TO.NO.PNR.OUT] Message body [UNB+IATA:1+EK+NR+250828:1236+REF10'"
    "UNH+3+PNRGOV:11:1:IA+EK0160/290825/1435+01'TVL+290825:1435:290825:2325+OSL+DXB+EK+0160'"
    "SRC'RCI+EK:ABC123'TIF+DOE:JOHN'UNT+6+3'UNZ+1+REF10']\n"
)


def test_separators_resolved_per_block(tmp_path):
    print("\n4. Testing per block separators...")
    (tmp_path / "app.log").write_text(CUSTOM_SEPARATOR_ENTRY + DEFAULT_SEPARATOR_ENTRY, encoding="utf-8")
    result = make_engine().audit(tmp_path)

    assert result.errors == [], f"Unexpected errors {result.errors}"
    assert len(result.messages) == 3, f"Expected 3 messages, got {len(result.messages)}"

    reconciliation = result.reconciliation
    names = [p.display_name for p in reconciliation.input_population]
    assert names == ["DOE/JOHN", "ROE/A^B"], names
    assert [p.display_name for p in reconciliation.output_population] == ["DOE/JOHN"]
    assert reconciliation.processed_keys == {"ABC123|DOEJOHN"}
    assert reconciliation.flight_comparison.is_match, reconciliation.flight_comparison.differences

    second = next(m for m in result.messages if m.message_reference == "2")
    assert "TIF^ROE|A\\^B~" in second.raw_block, f"Raw text must keep its own separators: {second.raw_block!r}"
    assert "+" not in second.raw_block, second.raw_block
    assert second.raw_block.startswith("UNH^2^"), second.raw_block
    assert second.raw_block.endswith("UNT^6^2~"), second.raw_block
    print("   [PASS] Per block separators passed")


class StaleListingEngine(AuditEngine):
    """Lists a rotated-away file next to the real ones"""

    def list_log_files(self, path):
        return super().list_log_files(path) + [path / "rotated.log"]


def test_unreadable_file_does_not_stop_batch(tmp_path):
    print("\n5. Testing an unreadable log file...")
    (tmp_path / "app.log").write_text(make_log(), encoding="utf-8")
    result = StaleListingEngine(AuditConfig(enable_logging=False)).audit(tmp_path)

    assert len(result.errors) == 1, f"Expected one error, got {result.errors}"
    assert "rotated.log" in result.errors[0], result.errors[0]
    assert result.processed_files == [str(tmp_path / "app.log")]
    assert len(result.reconciliation.input_population) == 2, "The readable file is still audited"
    print("   [PASS] Unreadable log file passed")


def test_target_flight_filter_on_api_facts():
    log = (
        "INFO [2025-08-29T08:00:00,000][api] - API.Request - received Message body ["
        "UNB+UNOA:4+EK+NO+250829:0800+REF1'UNH+PAX1+PAXLST:D:05B:UN:IATA+API01+01:F'"
        "BGM+745'TDT+20+EK0160'LOC+125+OSL'DTM+189:2508291435:201'"
        "NAD+FL+++DOE:JOHN'DTM+329:850101'DOC+P+P1234567'UNT+8+PAX1'UNZ+1+REF1']\n"
    )
    for target in ("EK0160", "EK160"):
        result = make_engine(target_flight=target).audit_text(log, source="api.log")
        assert len(result.messages) == 1, f"{target} should match the TDT flight"
        assert result.messages[0].flight_token == "", "PAXLST carries no UNH flight token"
        assert len(result.reconciliation.input_population) == 1

    other = make_engine(target_flight="QR0001").audit_text(log, source="api.log")
    assert other.messages == []


def main():
    """Run all tests"""
    import tempfile
    from pathlib import Path

    print("\n" + "=" * 60)
    print("AUDIT ENGINE TESTS")
    print("=" * 60)

    tests = [
        test_audit_directory,
        test_audit_single_file_and_duplicate_logs,
        test_matching_strategy_from_config,
        test_incomplete_multipart_reported,
        test_envelope_mismatch_strict_and_lenient,
        test_target_flight_filter,
        test_missing_path_and_8bit_logs,
        test_separators_resolved_per_block,
        test_unreadable_file_does_not_stop_batch,
    ]
    try:
        for test in tests:
            with tempfile.TemporaryDirectory() as tmp:
                test(Path(tmp))
        test_api_audit_text()
        test_target_flight_filter_on_api_facts()
        print("\nALL TESTS PASSED!")
    except AssertionError as e:
        print(f"\n[FAIL] TEST FAILED: {e}")
        return 1
    return 0


if __name__ == "__main__":
    exit(main())
