import argparse
import sys
import logging
from typing import Callable, NoReturn, Optional

from .ledger import SnapshotLedger
from .operations import BackupOperations, BackupOutcome, OutcomeStatus

# Configure logging to write to file only, not stdout
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    filename='treebackup.log',
    filemode='a'
)
logger = logging.getLogger('treebackup')


def print_error_and_exit(error_message: str, exit_code: int = 1) -> NoReturn:
    """
    Print an error message and exit the program with the specified exit code.

    Args:
        error_message (str): The error message to display
        exit_code (int, optional): The exit code to use. Defaults to 1.
    """
    logger.error(error_message)
    print(f"Error: {error_message}", file=sys.stderr)
    sys.exit(exit_code)


def print_outcome(outcome: BackupOutcome) -> None:
    """Print a short console summary of a backup outcome."""
    if outcome.status is OutcomeStatus.FAILED:
        print(f"Error: {outcome.message}", file=sys.stderr)
        return

    print(outcome.message)
    if outcome.status is OutcomeStatus.SUCCESS:
        record = outcome.record
        if record.is_incremental:
            print(f"Based on: {record.based_on_snapshot}")
        print(f"Copied: {outcome.copied}  Linked: {outcome.linked}  "
              f"Copied instead of linked: {outcome.fallback_copied}  Failed: {outcome.failed}")

    if outcome.diagnostics:
        print(f"{len(outcome.diagnostics)} problems (see treebackup.log):")
        for diagnostic in outcome.diagnostics:
            print(f"  - {diagnostic}")


def _run_backup(args: argparse.Namespace, incremental: bool) -> None:
    ops = BackupOperations()
    if incremental:
        outcome = ops.run_incremental_backup(args.source_directory, args.backup_directory)
    else:
        outcome = ops.run_full_backup(args.source_directory, args.backup_directory)
    if not outcome.ok:
        print_error_and_exit(outcome.message)
    print_outcome(outcome)


def full_command(args: argparse.Namespace) -> None:
    """
    Execute the full command to copy a whole directory into a new snapshot.

    Args:
        args (argparse.Namespace): Command line arguments containing:
            - source_directory: Directory to back up
            - backup_directory: Directory holding the snapshots
    """
    logger.info("Starting full backup")
    _run_backup(args, incremental=False)


def incremental_command(args: argparse.Namespace) -> None:
    """
    Execute the incremental command to snapshot only what changed.

    Args:
        args (argparse.Namespace): Command line arguments containing:
            - source_directory: Directory to back up
            - backup_directory: Directory holding the snapshots
    """
    logger.info("Starting incremental backup")
    _run_backup(args, incremental=True)


def history_command(args: argparse.Namespace) -> None:
    """
    Execute the history command to print the history log of a backup directory.

    Args:
        args (argparse.Namespace): Command line arguments containing:
            - backup_directory: Directory holding the snapshots
    """
    try:
        lines = SnapshotLedger.read_log(args.backup_directory)
    except OSError as e:
        print_error_and_exit(f"Cannot read backup history: {e}")

    if not lines:
        print("No backup history found.")
        return
    for line in lines:
        print(line)


def show_history(ops: BackupOperations) -> None:
    records = ops.list_history()
    if not records:
        print("No backup history.")
        return
    print("\n=== Backup history ===")
    for record in records:
        print(record.render())
        print("-" * 24)


def menu_command(args: argparse.Namespace, input_func: Callable[[str], str] = input) -> None:
    """
    Run the interactive menu until the user chooses to exit.

    History shown from the menu covers the backups made during this session.

    Args:
        args (argparse.Namespace): Unused, present for dispatch
        input_func: Function used to prompt the user
    """
    ops = BackupOperations()
    actions = {
        "1": ops.run_full_backup,
        "2": ops.run_incremental_backup,
    }
    print("Welcome to treebackup")

    while True:
        print("\n=== treebackup ===")
        print("1. Full backup")
        print("2. Incremental backup")
        print("3. Show backup history")
        print("4. Exit")
        try:
            choice = input_func("Choose an action (1-4): ").strip()
        except EOFError:
            break

        if choice in actions:
            source = input_func("Source directory to back up: ").strip()
            target = input_func("Backup directory: ").strip()
            print_outcome(actions[choice](source, target))
        elif choice == "3":
            show_history(ops)
        elif choice == "4":
            print("Goodbye!")
            break
        else:
            print("Invalid choice, please try again.")


def _add_root_arguments(parser: argparse.ArgumentParser, source: bool = True) -> None:
    if source:
        parser.add_argument(
            "--source-directory",
            required=True,
            help="Directory to back up"
        )
    parser.add_argument(
        "--backup-directory",
        required=True,
        help="Directory that holds the snapshots and backup_history.txt"
    )


def main(argv: Optional[list] = None) -> int:
    """
    Main entry point for the backup tool command line interface.
    Parses arguments and dispatches to appropriate command handlers.

    Returns:
        int: Exit status, 0 on success. Failures exit through print_error_and_exit.
    """
    parser = argparse.ArgumentParser(
        description="Directory backup tool with hard-linked incremental snapshots",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    full_parser = subparsers.add_parser(
        "full",
        help="Copy the whole source directory into a new snapshot"
    )
    _add_root_arguments(full_parser)

    incremental_parser = subparsers.add_parser(
        "incremental",
        help="Snapshot changed files and hard-link unchanged ones from the latest snapshot"
    )
    _add_root_arguments(incremental_parser)

    history_parser = subparsers.add_parser(
        "history",
        help="Show the backup history log of a backup directory"
    )
    _add_root_arguments(history_parser, source=False)

    subparsers.add_parser(
        "menu",
        help="Run the interactive menu"
    )

    args = parser.parse_args(argv)

    # Command dispatch
    command_handlers = {
        "full": full_command,
        "incremental": incremental_command,
        "history": history_command,
        "menu": menu_command,
    }

    if args.command in command_handlers:
        command_handlers[args.command](args)
        return 0

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
