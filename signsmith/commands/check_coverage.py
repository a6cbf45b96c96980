from signsmith.commands.common import console, handle_errors
from signsmith.src.coverage.code_coverage import CoverageConfig, check_coverage, load_report


@handle_errors
def run_check_coverage_command(args):
    config = CoverageConfig.load(args.config)
    report = load_report(args.report)
    result = check_coverage(report, config, args.minimum)

    for name, coverage in result.files:
        console.print(f"  {name}: {coverage:.2f}%")
    console.print(
        f"[green]Code coverage {result.percentage:.2f}% over {result.file_count} file(s) "
        f"(minimum {args.minimum}%)"
    )
    return 0
