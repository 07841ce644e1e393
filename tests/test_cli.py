import io
import os
import shutil
import tempfile
import unittest
from unittest.mock import patch

from sqlite_fixtures import create_items_table, read_csv_gz
from tabledump.cli import EXIT_FATAL, EXIT_OK, EXIT_RANGE_FAILURES, EXIT_USAGE, main
from tabledump.dumper import DumpReport
from tabledump.errors import RangeExportFailure
from tabledump.range_chunking import Range
from tabledump.range_exporter import RangeOutcome


class TestCli(unittest.TestCase):
    """Test cases for the command-line entry point"""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, 'source.db')
        self.out_dir = os.path.join(self.temp_dir, 'dumps')
        self.dsn = f'sqlite:///{self.db_path}'

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_missing_required_flags_print_usage(self):
        for argv in ([], ['--table', 'items'], ['--db-dsn', self.dsn, '--table', 'items']):
            with self.subTest(argv=argv):
                with patch('sys.stderr', new_callable=io.StringIO) as stderr:
                    self.assertEqual(main(argv), EXIT_USAGE)
                self.assertIn('usage: tabledump', stderr.getvalue())

    def test_help_exits_zero(self):
        with patch('sys.stdout', new_callable=io.StringIO) as stdout:
            with self.assertRaises(SystemExit) as ctx:
                main(['-h'])
        self.assertEqual(ctx.exception.code, 0)
        self.assertIn('--slice-size', stdout.getvalue())

    def test_dump_prints_one_line_per_range(self):
        create_items_table(self.db_path, 25)

        with patch('sys.stdout', new_callable=io.StringIO) as stdout:
            code = main(['--db-dsn', self.dsn, '--table', 'items', '--to-path', self.out_dir,
                         '--slice-size', '10', '--concurrency', '2', '--gzip-level', '1'])

        self.assertEqual(code, EXIT_OK)
        lines = stdout.getvalue().splitlines()
        self.assertEqual(len(lines), 3)
        self.assertTrue(lines[0].endswith('_0.csv.gz: 10'))
        self.assertTrue(lines[1].endswith('_1.csv.gz: 10'))
        self.assertTrue(lines[2].endswith('_2.csv.gz: 5'))

        path = lines[2].rsplit(': ', 1)[0]
        self.assertEqual(len(read_csv_gz(path)), 6)

    def test_fatal_error_exit_code(self):
        create_items_table(self.db_path, 5)

        with patch('sys.stderr', new_callable=io.StringIO) as stderr:
            code = main(['--db-dsn', self.dsn, '--table', 'missing', '--to-path', self.out_dir])

        self.assertEqual(code, EXIT_FATAL)
        self.assertIn('missing', stderr.getvalue())

    def test_zero_slice_size_is_fatal(self):
        create_items_table(self.db_path, 5)

        with patch('sys.stderr', new_callable=io.StringIO):
            code = main(['--db-dsn', self.dsn, '--table', 'items', '--to-path', self.out_dir,
                         '--slice-size', '0'])

        self.assertEqual(code, EXIT_FATAL)

    def test_flags_are_passed_to_dump(self):
        report = DumpReport(table_name='items', run_name='run', total_rows=0, outcomes=())
        argv = ['--db-dsn', self.dsn, '--table', 'items', '--to-path', self.out_dir,
                '--concurrency', '4', '--slice-size', '250', '--gzip-level', '6',
                '--fetch-size', '50']

        with patch('tabledump.cli.dump_table', return_value=report) as dump:
            self.assertEqual(main(argv), EXIT_OK)

        dump.assert_called_once_with(self.dsn, 'items', self.out_dir, concurrency=4,
                                     slice_size=250, compression_level=6, fetch_size=50)

    def test_range_failures_are_printed_and_strict_mode(self):
        rng = Range(index=0, offset=0, size=10, output_path='/out/run_0.csv.gz')
        report = DumpReport(
            table_name='items', run_name='run', total_rows=10,
            outcomes=(RangeOutcome(range=rng, rows_written=3,
                                   error=RangeExportFailure(0, 'connection dropped')),)
        )
        argv = ['--db-dsn', self.dsn, '--table', 'items', '--to-path', self.out_dir]

        with patch('tabledump.cli.dump_table', return_value=report):
            with patch('sys.stdout', new_callable=io.StringIO) as stdout:
                self.assertEqual(main(argv), EXIT_OK)
            self.assertEqual(stdout.getvalue().strip(),
                             "/out/run_0.csv.gz (error: 'connection dropped'): 3")

            with patch('sys.stdout', new_callable=io.StringIO):
                self.assertEqual(main(argv + ['--strict']), EXIT_RANGE_FAILURES)


if __name__ == '__main__':
    unittest.main()
