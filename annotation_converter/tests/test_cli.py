#!/usr/bin/env python3

"""
Tests for the command-line interface.

Runs converter_cli.main() on temporary files and checks outputs, exit codes
and the JSON report.
"""

import json
import shutil
import tempfile
import unittest
import sys
import os

# Add the parent directory to the path to import modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../..')))

import converter_cli

GFF3_TEXT = (
    "##gff-version 3\n"
    "chr1\tsrc\tgene\t100\t500\t.\t+\t.\tID=g1\n"
    "chr1\tsrc\tmRNA\t100\t500\t.\t+\t.\tID=t1;Parent=g1\n"
    "chr1\tsrc\texon\t100\t200\t.\t+\t.\tParent=t1\n"
    "chr1\tsrc\texon\t300\t500\t.\t+\t.\tParent=t1\n"
    "chr1\tsrc\tCDS\t150\t200\t.\t+\t0\tParent=t1\n"
    "chr1\tsrc\tCDS\t300\t450\t.\t+\t0\tParent=t1\n"
)

REFFLAT_TEXT = "g1\tt1\tchr1\t+\t99\t500\t149\t450\t2\t99,299,\t200,500,\n"


class TestConverterCli(unittest.TestCase):
    """Test the converter command line."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def path(self, name):
        return os.path.join(self.temp_dir, name)

    def write_input(self, name, text):
        with open(self.path(name), 'w') as f:
            f.write(text)
        return self.path(name)

    def read_output(self, name):
        with open(self.path(name)) as f:
            return f.read()

    def test_gff2refflat(self):
        source = self.write_input('genes.gff3', GFF3_TEXT)
        code = converter_cli.main(['gff2refflat', '-i', source, '-o', self.path('out.refFlat')])
        self.assertEqual(code, 0)
        self.assertEqual(self.read_output('out.refFlat'), REFFLAT_TEXT)

    def test_convert_sniffs_formats(self):
        source = self.write_input('genes.txt', REFFLAT_TEXT)
        code = converter_cli.main(['convert', '-i', source, '-o', self.path('out.gtf')])
        self.assertEqual(code, 0)
        output = self.read_output('out.gtf')
        self.assertIn('gene_id "g1"; transcript_id "t1"; exon_number "1";', output)

    def test_convert_without_output_format(self):
        source = self.write_input('genes.gff3', GFF3_TEXT)
        code = converter_cli.main(['convert', '-i', source, '-o', self.path('out.unknown')])
        self.assertEqual(code, 1)
        self.assertFalse(os.path.exists(self.path('out.unknown')))

    def test_errors_remove_output_and_fail(self):
        """Unresolved errors give exit code 1 and leave no output file."""
        source = self.write_input('bad.gff3', GFF3_TEXT + "chr1\tsrc\texon\t900\t800\t.\t+\t.\tParent=t1\n")
        report_path = self.path('report.json')
        code = converter_cli.main(['gff2gtf', '-i', source, '-o', self.path('out.gtf'),
                                   '--report', report_path])
        self.assertEqual(code, 1)
        self.assertFalse(os.path.exists(self.path('out.gtf')))

        with open(report_path) as f:
            report = json.load(f)
        self.assertFalse(report['written'])
        self.assertEqual(report['error_count'], 1)
        self.assertEqual(report['issues'][0]['kind'], 'MalformedRecord')
        self.assertEqual(report['issues'][0]['line_number'], 8)

    def test_policy_flag(self):
        source = self.write_input('bad.gff3', GFF3_TEXT + "chr1\tsrc\texon\t900\t800\t.\t+\t.\tParent=t1\n")
        code = converter_cli.main(['gff2refflat', '-i', source, '-o', self.path('out.refFlat'),
                                   '--on-malformed', 'skip'])
        self.assertEqual(code, 0)
        self.assertEqual(self.read_output('out.refFlat'), REFFLAT_TEXT)

    def test_validate(self):
        source = self.write_input('genes.gff3', GFF3_TEXT)
        self.assertEqual(converter_cli.main(['validate', '-i', source]), 0)

        overlapping = self.write_input(
            'overlap.gff3', GFF3_TEXT + "chr1\tsrc\texon\t150\t250\t.\t+\t.\tParent=t1\n")
        self.assertEqual(converter_cli.main(['validate', '-i', overlapping]), 1)
        self.assertEqual(converter_cli.main(['validate', '-i', overlapping,
                                             '--on-conflict', 'warn']), 0)

    def test_undecodable_input(self):
        """Input that is not UTF-8 fails with exit code 1 instead of a traceback."""
        source = self.path('binary.gff3')
        with open(source, 'wb') as f:
            f.write(GFF3_TEXT.encode() + b"chr1\tsrc\tgene\t1\t9\t.\t+\t.\tID=g2;Note=\xff\xfe\n")
        self.assertEqual(converter_cli.main(['validate', '-i', source]), 1)
        code = converter_cli.main(['gff2gtf', '-i', source, '-o', self.path('out.gtf')])
        self.assertEqual(code, 1)
        self.assertFalse(os.path.exists(self.path('out.gtf')))

    def test_config_file(self):
        source = self.write_input('genes.gff3', GFF3_TEXT)
        config = self.write_input('config.json', json.dumps({'seq_name_prefix': 'hg_'}))
        code = converter_cli.main(['gff2refflat', '-i', source, '-o', self.path('out.refFlat'),
                                   '--config', config])
        self.assertEqual(code, 0)
        self.assertIn('\thg_chr1\t', self.read_output('out.refFlat'))

    def test_invalid_config_file(self):
        source = self.write_input('genes.gff3', GFF3_TEXT)
        code = converter_cli.main(['gff2refflat', '-i', source, '-o', self.path('out.refFlat'),
                                   '--config', self.path('missing.json')])
        self.assertEqual(code, 1)

    def test_missing_input(self):
        code = converter_cli.main(['gff2gtf', '-i', self.path('missing.gff3'),
                                   '-o', self.path('out.gtf')])
        self.assertEqual(code, 1)


if __name__ == '__main__':
    unittest.main()
