"""Failure table shown after batch runs."""

from ..config.constants import ERROR_MESSAGE_TRUNCATE_LENGTH

MAX_FILENAME_LENGTH = 37
FILENAME_TRUNCATE_LENGTH = 34
MAX_KIND_LENGTH = 20


def print_failure_table(failed_results: list) -> None:
    """
    Print the files that could not be normalized and why.

    Args:
        failed_results: ProcessingResult objects with FAILED status

    """
    if not failed_results:
        return

    print("\n" + "=" * 80)
    print(f"{'NORMALIZATION FAILURES':^80}")
    print("=" * 80)
    print(f"Total failed: {len(failed_results)} files\n")

    print(f"{'FILE':<40} | {'KIND':<20} | ERROR")
    print("-" * 80)

    for result in failed_results:
        filename = result.source_file.name
        if len(filename) > MAX_FILENAME_LENGTH:
            filename = filename[:FILENAME_TRUNCATE_LENGTH] + "..."

        kind = result.error_kind.value if result.error_kind else "unknown"
        error_msg = (result.message or "Unknown error").splitlines()[0]
        if len(error_msg) > ERROR_MESSAGE_TRUNCATE_LENGTH:
            error_msg = error_msg[: ERROR_MESSAGE_TRUNCATE_LENGTH - 3] + "..."

        print(f"{filename:<40} | {kind[:MAX_KIND_LENGTH]:<20} | {error_msg}")

    print("\n💡 TIP: Check the FFmpeg installation, file permissions and free disk space\n")


def print_oversized_table(oversized_results: list, ceiling_bytes: int) -> None:
    """Print files delivered above the size ceiling."""
    if not oversized_results:
        return

    print(f"\n{len(oversized_results)} files still exceed {ceiling_bytes / (1024 * 1024):.1f} MB:")
    for result in oversized_results:
        size_mb = (result.new_size or 0) / (1024 * 1024)
        print(f"  {result.source_file.name:<40} {size_mb:>8.2f} MB")
