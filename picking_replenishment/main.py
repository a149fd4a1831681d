"""
Main entry point for the Picking Replenishment Scheduler.

Runs the scheduler loop and gives operators command-line access to manual
syncs, wave generation and the wave, fragmentation and sync-log reports.
"""
import argparse
import sys

from tabulate import tabulate

from picking_replenishment.batch import ReplenishmentScheduler, SchedulerContext
from picking_replenishment.config import config
from picking_replenishment.db import initialize
from picking_replenishment.exceptions import ReplenishmentError
from picking_replenishment.logging_setup import get_logger
from picking_replenishment.models import SyncType, WaveStatus
from picking_replenishment.services import (
    DashboardService,
    FragmentationService,
    StockService,
    SyncLogService,
    WaveCompletionService,
    WaveService
)

log = get_logger('app')


def _fmt_time(value):
    return value.strftime('%Y-%m-%d %H:%M:%S') if value else '-'


def _fmt_num(value, digits=1):
    return '-' if value is None else f"{value:.{digits}f}"


def setup_database(args):
    """Create (and optionally drop first) all tables."""
    db = initialize(create_tables=False)
    if args.drop:
        log.warning("Dropping existing tables")
        db.drop_all_tables()
    db.create_all_tables()
    log.info(f"Database ready at {config.get('DATABASE', 'engine')}")
    return True


def run_scheduler(args):
    """Start the scheduler loop; Ctrl-C stops it."""
    db = initialize()
    scheduler = ReplenishmentScheduler(SchedulerContext(db))
    try:
        scheduler.start()
    except KeyboardInterrupt:
        log.info("Interrupted, stopping scheduler")
    finally:
        scheduler.shutdown(wait=True)
        db.dispose()
    return True


def _print_branch_results(result):
    if result.get('status') != 'synced':
        print(f"Company {result['company_id']} skipped: {result.get('reason', result.get('error'))}")
        return

    table_data = []
    for branch in result['branches']:
        table_data.append([
            branch['branch'],
            'OK' if branch.get('success') else 'FAILED',
            branch.get('items', 0),
            branch.get('updated', 0),
            branch.get('below_min', 0),
            _fmt_num(branch.get('score')),
            branch.get('wave_number') or '-',
            branch.get('error') or branch.get('wave_error') or ''
        ])

    print(f"\nSync results for company {result['company_id']}:")
    print(tabulate(table_data, headers=[
        'Branch', 'Status', 'Items', 'Updated', 'Below Min', 'Score', 'Wave', 'Error'
    ]))


def sync_now(args):
    """Sync a company immediately, ignoring its interval."""
    db = initialize()
    scheduler = ReplenishmentScheduler(SchedulerContext(db))
    try:
        result = scheduler.run_now(args.company).result()
    finally:
        scheduler.shutdown()
    _print_branch_results(result)
    return result


def generate_wave(args):
    """Fresh sync and wave generation for one branch."""
    db = initialize()
    scheduler = ReplenishmentScheduler(SchedulerContext(db))
    try:
        result = scheduler.generate_wave_now(args.company, args.branch).result()
    finally:
        scheduler.shutdown()
    _print_branch_results(result)
    return result


def complete_waves(args):
    """Complete every sent wave past the grace window."""
    db = initialize()
    results = WaveCompletionService(db).complete_overdue_waves()
    print(f"Overdue waves: {results['found']}, completed: {results['completed']}, failed: {results['failed']}")
    for wave_number in results['waves']:
        print(f"  {wave_number}")
    return results


def list_waves(args):
    db = initialize()
    with db.session_scope() as session:
        waves = WaveService(session).get_waves(
            args.company,
            branch=args.branch,
            status=args.status,
            limit=args.limit
        )
        table_data = [
            [
                wave.id, wave.wave_number, wave.branch, wave.status,
                f"{wave.completed_tasks}/{wave.total_tasks}",
                wave.triggered_by, _fmt_time(wave.generated_at), _fmt_time(wave.sent_at)
            ]
            for wave in waves
        ]
        stats = WaveService(session).get_wave_stats(args.company)

    if not table_data:
        print("No waves found")
        return

    print(f"\nWaves for company {args.company}:")
    print(tabulate(table_data, headers=[
        'ID', 'Wave', 'Branch', 'Status', 'Tasks', 'Trigger', 'Generated', 'Sent'
    ]))

    print("\nPer-branch totals:")
    print(tabulate(
        [[s['branch'], s['total_waves'], s['waves_today'], s['pending_tasks'], s['completed_tasks']] for s in stats],
        headers=['Branch', 'Waves', 'Today', 'Pending Tasks', 'Completed Tasks']
    ))


def show_wave(args):
    db = initialize()
    with db.session_scope() as session:
        wave = WaveService(session).get_wave(args.company, args.id)

        print(f"\nWave {wave.wave_number} (id {wave.id})")
        print(f"  Branch:    {wave.branch}")
        print(f"  Status:    {wave.status}")
        print(f"  Trigger:   {wave.triggered_by}")
        print(f"  Generated: {_fmt_time(wave.generated_at)}")
        print(f"  Sent:      {_fmt_time(wave.sent_at)}")
        print(f"  Completed: {_fmt_time(wave.completed_at)}")
        if wave.gateway_response:
            print(f"  Reference: {wave.gateway_response}")
        if wave.error_message:
            print(f"  Error:     {wave.error_message}")

        table_data = [
            [
                task.sequence, task.location_code, task.product_code, task.abc_class, task.priority,
                _fmt_num(task.current_qty), _fmt_num(task.min_qty), _fmt_num(task.qty_to_replenish), task.status
            ]
            for task in wave.tasks
        ]

    print()
    print(tabulate(table_data, headers=[
        'Seq', 'Location', 'Product', 'ABC', 'Priority', 'Current', 'Min', 'To Replenish', 'Status'
    ]))


def show_fragmentation(args):
    db = initialize()
    with db.session_scope() as session:
        report = FragmentationService(session).get_trend_report(args.company, branch=args.branch, days=args.days)

    if not report:
        print("No fragmentation samples found")
        return

    print(f"\nFragmentation for company {args.company}, last {args.days} days:")
    print(tabulate(
        [
            [
                r['branch'], r['samples'], _fmt_num(r['latest']), _fmt_num(r['mean']),
                _fmt_num(r['min']), _fmt_num(r['max']), _fmt_num(r['trend_per_day'], 2)
            ]
            for r in report
        ],
        headers=['Branch', 'Samples', 'Latest', 'Mean', 'Min', 'Max', 'Trend/day']
    ))


def show_sync_log(args):
    db = initialize()
    with db.session_scope() as session:
        entries = SyncLogService(session).get_recent(args.company, limit=args.limit, sync_type=args.type)
        table_data = [
            [
                _fmt_time(e.synced_at), e.branch, e.sync_type, e.status,
                e.records_processed, e.duration_ms, e.error_message
            ]
            for e in entries
        ]

    if not table_data:
        print("No sync log entries found")
        return

    print(tabulate(table_data, headers=['Time', 'Branch', 'Type', 'Status', 'Records', 'ms', 'Error']))


def show_dashboard(args):
    db = initialize()
    with db.session_scope() as session:
        summary = DashboardService(session).get_summary(args.company)

    print(f"\nCompany {summary['company_id']}")
    if summary['has_settings']:
        print(f"  Sync every {summary['sync_interval_minutes']} min, "
              f"next in {_fmt_num(summary['next_sync_in_minutes'])} min")
    else:
        print("  No picking settings configured")

    print()
    print(tabulate(
        [
            [
                b['branch'], b['total_locations'], b['below_min'], _fmt_num(b['health_pct']),
                _fmt_num(b['score']), _fmt_time(b['last_wave_at'])
            ]
            for b in summary['branches']
        ],
        headers=['Branch', 'Locations', 'Below Min', 'Health %', 'Fragmentation', 'Last Wave']
    ))


def list_locations(args):
    db = initialize()
    with db.session_scope() as session:
        locations = StockService(session).list_locations(args.company, branch=args.branch)

    if not locations:
        print("No picking locations found")
        return

    print(f"\nPicking locations for company {args.company}:")
    print(tabulate(
        [
            [
                loc['branch'], loc['location_code'], loc['product_code'], loc['abc_class'],
                _fmt_num(loc['current_qty']), _fmt_num(loc['min_qty']), _fmt_num(loc['max_qty']),
                _fmt_num(loc['occupancy_pct']), _fmt_time(loc['last_sync_at'])
            ]
            for loc in locations
        ],
        headers=['Branch', 'Location', 'Product', 'ABC', 'Current', 'Min', 'Max', 'Occupancy %', 'Last Sync']
    ))


def import_locations(args):
    db = initialize()
    with open(args.file, encoding=args.encoding) as handle:
        with db.session_scope() as session:
            results = StockService(session).import_locations(args.company, handle)

    print(f"Imported: {results['imported']}, skipped: {results['skipped']}")
    for error in results['errors']:
        print(f"  {error}")
    return results


def build_parser():
    parser = argparse.ArgumentParser(description='Picking Replenishment Scheduler')
    subparsers = parser.add_subparsers(dest='command', help='Commands')

    setup_parser = subparsers.add_parser('setup-db', help='Set up the database schema')
    setup_parser.add_argument('--drop', action='store_true', help='Drop existing tables before setup')
    setup_parser.set_defaults(func=setup_database)

    run_parser = subparsers.add_parser('run', help='Start the scheduler loop')
    run_parser.set_defaults(func=run_scheduler)

    sync_parser = subparsers.add_parser('sync-now', help='Sync a company immediately')
    sync_parser.add_argument('--company', type=int, required=True, help='Company ID')
    sync_parser.set_defaults(func=sync_now)

    wave_gen_parser = subparsers.add_parser('generate-wave', help='Sync one branch and generate a wave')
    wave_gen_parser.add_argument('--company', type=int, required=True, help='Company ID')
    wave_gen_parser.add_argument('--branch', type=str, required=True, help='Branch code')
    wave_gen_parser.set_defaults(func=generate_wave)

    complete_parser = subparsers.add_parser('complete-waves', help='Complete overdue sent waves')
    complete_parser.set_defaults(func=complete_waves)

    waves_parser = subparsers.add_parser('waves', help='List waves')
    waves_parser.add_argument('--company', type=int, required=True, help='Company ID')
    waves_parser.add_argument('--branch', type=str, help='Branch code')
    waves_parser.add_argument('--status', type=str, choices=[s.value for s in WaveStatus], help='Wave status')
    waves_parser.add_argument('--limit', type=int, default=50, help='Maximum number of waves')
    waves_parser.set_defaults(func=list_waves)

    wave_parser = subparsers.add_parser('wave', help='Show a wave and its tasks')
    wave_parser.add_argument('--company', type=int, required=True, help='Company ID')
    wave_parser.add_argument('--id', type=int, required=True, help='Wave ID')
    wave_parser.set_defaults(func=show_wave)

    frag_parser = subparsers.add_parser('fragmentation', help='Fragmentation history and trend')
    frag_parser.add_argument('--company', type=int, required=True, help='Company ID')
    frag_parser.add_argument('--branch', type=str, help='Branch code')
    frag_parser.add_argument('--days', type=int, default=30, help='Days of history')
    frag_parser.set_defaults(func=show_fragmentation)

    log_parser = subparsers.add_parser('sync-log', help='Recent sync log entries')
    log_parser.add_argument('--company', type=int, required=True, help='Company ID')
    log_parser.add_argument('--type', type=str, choices=[t.value for t in SyncType], help='Entry type')
    log_parser.add_argument('--limit', type=int, default=50, help='Maximum number of entries')
    log_parser.set_defaults(func=show_sync_log)

    dash_parser = subparsers.add_parser('dashboard', help='Per-branch summary')
    dash_parser.add_argument('--company', type=int, required=True, help='Company ID')
    dash_parser.set_defaults(func=show_dashboard)

    locations_parser = subparsers.add_parser('locations', help='List picking locations and occupancy')
    locations_parser.add_argument('--company', type=int, required=True, help='Company ID')
    locations_parser.add_argument('--branch', type=str, help='Branch code')
    locations_parser.set_defaults(func=list_locations)

    import_parser = subparsers.add_parser('import-locations', help='Import picking positions from CSV')
    import_parser.add_argument('--company', type=int, required=True, help='Company ID')
    import_parser.add_argument('file', help='Semicolon separated file')
    import_parser.add_argument('--encoding', type=str, default='utf-8', help='File encoding')
    import_parser.set_defaults(func=import_locations)

    return parser


def main(argv=None):
    """Main application entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        args.func(args)
    except ReplenishmentError as e:
        log.error(f"{args.command} failed: {str(e)}")
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
