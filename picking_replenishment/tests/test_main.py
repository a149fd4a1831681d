"""
Tests for the operator command line.
"""
import io
import os
import tempfile
import unittest
from unittest.mock import patch

from picking_replenishment.main import build_parser, main
from picking_replenishment.models import StockRecord
from picking_replenishment.tests.fixtures import add_position, make_db, seed_company


class TestCommandLine(unittest.TestCase):
    def setUp(self):
        self.db = make_db()
        seed_company(self.db)
        self.init_patcher = patch('picking_replenishment.main.initialize', return_value=self.db)
        self.init_patcher.start()

    def tearDown(self):
        self.init_patcher.stop()
        self.db.dispose()

    def _run(self, argv):
        with patch('sys.stdout', new_callable=io.StringIO) as out:
            code = main(argv)
        return code, out.getvalue()

    def test_parser(self):
        args = build_parser().parse_args(['waves', '--company', '3', '--status', 'sent'])

        self.assertEqual(args.company, 3)
        self.assertEqual(args.status, 'sent')
        self.assertEqual(args.limit, 50)

    def test_no_command(self):
        code, _ = self._run([])
        self.assertEqual(code, 1)

    def test_import_locations(self):
        with tempfile.NamedTemporaryFile('w', suffix='.csv', delete=False) as handle:
            handle.write("branch;location;product;description;min;max;abc\n01;A-01-01-1;P1;Soap;10;50;A\n")
            path = handle.name

        try:
            code, output = self._run(['import-locations', '--company', '1', path])
        finally:
            os.remove(path)

        self.assertEqual(code, 0)
        self.assertIn('Imported: 1', output)
        with self.db.session_scope() as session:
            self.assertEqual(session.query(StockRecord).count(), 1)

    def test_dashboard(self):
        add_position(self.db, 1, '01', 'A-01-01-1', 'P1', 5, 10, 50, 'A')

        code, output = self._run(['dashboard', '--company', '1'])

        self.assertEqual(code, 0)
        self.assertIn('Company 1', output)
        self.assertIn('Below Min', output)

    def test_locations(self):
        add_position(self.db, 1, '01', 'C-01-01-1', 'P1', 5, 2, 20, 'C')
        add_position(self.db, 1, '02', 'A-01-01-1', 'P2', 30, 10, 40, 'A')

        code, output = self._run(['locations', '--company', '1', '--branch', '01'])

        self.assertEqual(code, 0)
        self.assertIn('Occupancy %', output)
        self.assertIn('C-01-01-1', output)
        self.assertIn('P1', output)
        self.assertNotIn('P2', output)

    def test_missing_wave_reports_error(self):
        with patch('sys.stderr', new_callable=io.StringIO) as err:
            code, _ = self._run(['wave', '--company', '1', '--id', '404'])

        self.assertEqual(code, 1)
        self.assertIn('not found', err.getvalue())

    def test_empty_reports(self):
        for argv in (
            ['waves', '--company', '1'], ['sync-log', '--company', '1'],
            ['fragmentation', '--company', '1'], ['locations', '--company', '1']
        ):
            code, output = self._run(argv)
            self.assertEqual(code, 0)
            self.assertIn('No ', output)


if __name__ == '__main__':
    unittest.main()
