"""
Tests for passenger reconciliation and matching strategies
"""

from edifact_audit.models import AuditResult, FlightFacts, MatchingStrategy, PassengerFacts
from edifact_audit.reconciler import (
    PassengerReconciler, compare_flights, name_doc_dob_key, normalize, pnr_and_name_key,
)


def passenger(name, locator="", document="", dob="", source="in"):
    return PassengerFacts(display_name=name, locator=locator, document_number=document,
                          date_or_key_field=dob, source_tags=[source])


def test_normalize():
    assert normalize(" abc-123 ") == "ABC123"
    assert normalize(None) == ""
    assert pnr_and_name_key(passenger("Doe/John", "abc123")) == "ABC123|DOEJOHN"
    assert name_doc_dob_key(passenger("Doe, John")) == "DOE JOHN|NODOC|NODOB"


def test_duplicate_input_sighting():
    print("\n1. Testing duplicate input sightings...")
    inputs = [passenger("DOE/JOHN", "ABC123", source="in1"), passenger("DOE/JOHN", "ABC123", source="in2")]
    outputs = [passenger("DOE/JOHN", "ABC123", source="out1")]

    result = PassengerReconciler(MatchingStrategy.PNR_AND_NAME).reconcile(inputs, outputs)
    assert len(result.input_population) == 1, "Input should collapse to one passenger"
    assert result.input_population[0].occurrence_count == 2
    assert result.input_population[0].source_tags == ["in1", "in2"]
    assert len(result.duplicate_keys) == 1
    assert len(result.processed_keys) == 1
    assert len(result.dropped_keys) == 0
    assert len(result.added_keys) == 0
    assert result.total_input_sightings == 2
    assert result.processed_pnr_keys == {"ABC123"}
    print("   [PASS] Duplicate input sightings passed")


def test_strategies_asserted_independently():
    print("\n2. Testing matching strategies...")
    inputs = [passenger("DOE/JOHN", "ABC123", "P123", "850101")]
    outputs = [passenger("JOHN DOE", "XYZ999", "P123", "850101", source="out")]

    by_pnr = PassengerReconciler(MatchingStrategy.PNR_AND_NAME).reconcile(inputs, outputs)
    assert (len(by_pnr.processed_keys), len(by_pnr.dropped_keys), len(by_pnr.added_keys)) == (0, 1, 1)
    assert by_pnr.dropped_pnr_keys == {"ABC123"}
    assert by_pnr.added_pnr_keys == {"XYZ999"}

    by_identity = PassengerReconciler(MatchingStrategy.NAME_DOC_DOB).reconcile(inputs, outputs)
    assert (len(by_identity.processed_keys), len(by_identity.dropped_keys), len(by_identity.added_keys)) == (1, 0, 0)
    assert by_identity.processed_keys == {"DOE JOHN|P123|850101"}
    print("   [PASS] Matching strategies passed")


def test_custom_strategy():
    inputs = [passenger("DOE/JOHN", "ABC123")]
    outputs = [passenger("DOE/JOHN", "ZZZ999")]

    fallback = PassengerReconciler(MatchingStrategy.CUSTOM).reconcile(inputs, outputs)
    assert len(fallback.processed_keys) == 0, "CUSTOM without a key function behaves like PNR_AND_NAME"

    reconciler = PassengerReconciler(MatchingStrategy.CUSTOM)
    reconciler.register_custom_key(lambda p: normalize(p.display_name))
    custom = reconciler.reconcile(inputs, outputs)
    assert custom.processed_keys == {"DOEJOHN"}


def test_deterministic():
    inputs = [passenger("B/ONE", "R1"), passenger("A/TWO", "R2"), passenger("B/ONE", "R1")]
    outputs = [passenger("A/TWO", "R2"), passenger("C/THREE", "R3")]
    first = PassengerReconciler().reconcile(inputs, outputs)
    second = PassengerReconciler().reconcile(inputs, outputs)
    assert first.counts() == second.counts()
    assert first.processed_keys == second.processed_keys
    assert [p.identity_key for p in first.input_population] == [p.identity_key for p in second.input_population]
    assert inputs[0].identity_key == "", "Reconciliation must not modify the caller's sightings"


def test_output_duplicates_are_listed():
    print("\n3. Testing output side duplicates...")
    repeated = passenger("DOE/JOHN", "ABC123", source="out")
    rec = PassengerReconciler().reconcile([], [repeated, repeated])
    assert rec.duplicate_keys == {"ABC123|DOEJOHN"}

    result = AuditResult(reconciliation=rec)
    assert [p.display_name for p in result.passengers('duplicate')] == ["DOE/JOHN"]
    assert result.passengers('input_duplicate') == []
    assert len(result.passengers('output_duplicate')) == 1

    frame = result.to_dataframe('duplicate')
    assert len(frame) == 1, f"Output duplicates must appear in the table: {frame}"
    assert list(frame['side']) == ["OUTPUT"]
    assert list(frame['count']) == [2]
    print("   [PASS] Output side duplicates passed")


def test_flight_comparison():
    print("\n4. Testing flight comparison...")
    inbound = FlightFacts(airline_code="EK", flight_number="0160", origin_port="OSL", dest_port="DXB",
                          departure_date="29/08/25", departure_time="14:35")
    outbound = FlightFacts(airline_code="EK", flight_number="160", origin_port="OSL", dest_port="DXB",
                           departure_date="29/08/25", departure_time="14:35")
    comparison = compare_flights(inbound, outbound)
    assert comparison.is_match, f"Leading zeros should not differ: {comparison.differences}"

    rerouted = outbound.copy(update={'dest_port': 'BOM'})
    comparison = compare_flights(inbound, rerouted)
    assert not comparison.is_match
    assert comparison.differences == ["Route: OSL-DXB vs OSL-BOM"], comparison.differences

    missing = compare_flights(inbound, None)
    assert not missing.is_match
    assert missing.differences == ["No output flight details"]
    print("   [PASS] Flight comparison passed")


def main():
    """Run all tests"""
    print("\n" + "=" * 60)
    print("PASSENGER RECONCILIATION TESTS")
    print("=" * 60)

    try:
        test_normalize()
        test_duplicate_input_sighting()
        test_strategies_asserted_independently()
        test_custom_strategy()
        test_deterministic()
        test_output_duplicates_are_listed()
        test_flight_comparison()
        print("\nALL TESTS PASSED!")
    except AssertionError as e:
        print(f"\n[FAIL] TEST FAILED: {e}")
        return 1
    return 0


if __name__ == "__main__":
    exit(main())
