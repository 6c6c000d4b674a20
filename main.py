import argparse
import os
import time

from edifact_audit import AuditEngine, ConfigManager, MatchingStrategy

CATEGORIES = ("input", "output", "processed", "dropped", "added", "duplicate")


def build_parser():
    parser = argparse.ArgumentParser(description="Reconcile PNRGOV/API passengers between input and output logs.")
    parser.add_argument("path", help="Log file or directory of log files")
    parser.add_argument("--config", default=None, help="JSON configuration file (optional)")
    parser.add_argument("--strategy", choices=[s.value for s in MatchingStrategy], default=None,
                        help="Passenger matching strategy")
    parser.add_argument("--flight", default=None, help="Target flight, e.g. EK0160")
    parser.add_argument("--strict", action="store_true", help="Treat interchange reference mismatches as errors")
    parser.add_argument("--verbosity", choices=["SUMMARY", "DETAILED", "DEBUG"], default=None)
    parser.add_argument("--quiet", action="store_true", help="Disable log output")
    parser.add_argument("--output-dir", default=None, help="Write one CSV per passenger category here")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    manager = ConfigManager(args.config)
    overrides = {
        'matching_strategy': args.strategy,
        'target_flight': args.flight,
        'verbosity': args.verbosity,
    }
    if args.strict:
        overrides['strict_validation'] = True
    if args.quiet:
        overrides['enable_logging'] = False
    manager.update_config(**{k: v for k, v in overrides.items() if v is not None})

    validation = manager.validate_config()
    for warning in validation['warnings']:
        print(f"Config warning: {warning}")
    if not validation['valid']:
        for error in validation['errors']:
            print(f"Config error: {error}")
        return 2

    start_time = time.time()
    engine = AuditEngine(manager.get_config())
    result = engine.audit(args.path)

    print(f"Processed {len(result.processed_files)} file(s), {len(result.messages)} message(s).")
    for key, value in result.summary().items():
        print(f"  {key}: {value}")

    comparison = result.reconciliation.flight_comparison
    if comparison.differences:
        print("Flight differences:")
        for difference in comparison.differences:
            print(f"  - {difference}")

    for report in result.completeness_report():
        if not report['complete']:
            print(f"Incomplete message {report['message_reference']}: parts {report['parts']}")

    for error in result.errors:
        print(f"Error: {error}")

    if args.output_dir:
        os.makedirs(args.output_dir, exist_ok=True)
        for category in CATEGORIES:
            output_file = os.path.join(args.output_dir, f"{category}.csv")
            result.to_dataframe(category).to_csv(output_file, index=False)
        print(f"Saved passenger CSVs to {args.output_dir}")

    total_time = time.time() - start_time
    print(f"Total execution time: {total_time:.2f} seconds.")
    return 1 if result.errors else 0


if __name__ == "__main__":
    exit(main())
