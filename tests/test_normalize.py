import unittest
from datetime import date, datetime, timedelta, timezone

from errors import InvalidDateError
from normalize.dates import format_date, parse_date, parse_date_from_text
from normalize.models import CommitRecord, DateWindow, SourceService, WorkItemRecord, has_timestamp, parse_timestamp
from normalize.util import first_line, normalize_devops_commit, normalize_devops_work_item, normalize_github_commit


class TestNormalize(unittest.TestCase):
    def test_normalize_github_commit(self):
        raw = {
            'sha': 'a1b2c3',
            'html_url': 'https://github.com/acme/api/commit/a1b2c3',
            'commit': {
                'message': 'Fix checkout\r\n\r\nDetails here',
                'author': {'name': 'Alice', 'email': 'a@example.com', 'date': '2026-03-05T10:15:00Z'},
            },
        }
        commit = normalize_github_commit(raw, repo='acme/api')
        self.assertEqual(commit.id, 'a1b2c3')
        self.assertEqual(commit.message, 'Fix checkout')
        self.assertEqual(commit.full_message, 'Fix checkout\r\n\r\nDetails here')
        self.assertEqual(commit.author_date, datetime(2026, 3, 5, 10, 15, tzinfo=timezone.utc))
        self.assertEqual(commit.source, SourceService.GITHUB)
        self.assertEqual(commit.url, 'https://github.com/acme/api/commit/a1b2c3')
        self.assertEqual(commit.repo, 'acme/api')

    def test_normalize_devops_commit_builds_link(self):
        raw = {
            'commitId': 'ff00',
            'comment': 'Merged PR 12: login',
            'author': {'name': 'Bob', 'email': 'b@example.com', 'date': '2026-03-05T07:00:00.1234567Z'},
        }
        commit = normalize_devops_commit(raw, 'my org', 'Web Shop', 'front end')
        self.assertEqual(commit.source, SourceService.DEVOPS)
        self.assertEqual(commit.url, 'https://dev.azure.com/my%20org/Web%20Shop/_git/front%20end/commit/ff00')
        self.assertEqual(commit.author_date, datetime(2026, 3, 5, 7, 0, 0, 123456, tzinfo=timezone.utc))
        self.assertEqual(commit.project, 'Web Shop')

    def test_normalize_devops_work_item(self):
        raw = {'id': 42, 'fields': {'System.Title': 'Login fails', 'System.State': 'Active', 'System.WorkItemType': 'Bug', 'System.TeamProject': 'Shop'}}
        item = normalize_devops_work_item(raw, 'org', 'Shop')
        self.assertEqual((item.id, item.title, item.state, item.type, item.project), (42, 'Login fails', 'Active', 'Bug', 'Shop'))
        self.assertEqual(item.url, 'https://dev.azure.com/org/Shop/_workitems/edit/42')

    def test_first_line(self):
        self.assertEqual(first_line('one\ntwo'), 'one')
        self.assertEqual(first_line(''), '')

    def test_parse_timestamp_offsets(self):
        self.assertEqual(parse_timestamp('2026-03-05T12:00:00+02:00'), datetime(2026, 3, 5, 10, 0, tzinfo=timezone.utc))
        self.assertEqual(parse_timestamp('2026-03-05T12:00:00').tzinfo, timezone.utc)

    def test_parse_timestamp_any_fraction_length(self):
        base = datetime(2026, 3, 5, 7, 0, tzinfo=timezone.utc)
        self.assertEqual(parse_timestamp('2026-03-05T07:00:00.1Z'), base.replace(microsecond=100000))
        self.assertEqual(parse_timestamp('2026-03-05T07:00:00.12345Z'), base.replace(microsecond=123450))
        self.assertEqual(parse_timestamp('2026-03-05T07:00:00.1234567+00:00'), base.replace(microsecond=123456))
        self.assertEqual(parse_timestamp('2026-03-05T07:00:00.12'), base.replace(microsecond=120000))

    def test_parse_timestamp_rejects_garbage(self):
        for bad in ('yesterday', 12345, None):
            with self.assertRaises(ValueError):
                parse_timestamp(bad)
        self.assertFalse(has_timestamp('yesterday'))
        self.assertTrue(has_timestamp('2026-03-05T07:00:00Z'))

    def test_records_survive_dict_conversion(self):
        commit = CommitRecord('x1', 'Msg', datetime(2026, 3, 5, 9, 0, tzinfo=timezone.utc), SourceService.DEVOPS, 'u', project='P', repo='r')
        self.assertEqual(CommitRecord.from_dict(commit.to_dict()), commit)
        item = WorkItemRecord(7, 'T', 'New', 'Task', 'P', 'u')
        self.assertEqual(WorkItemRecord.from_dict(item.to_dict()), item)


class TestDates(unittest.TestCase):
    def test_parse_date(self):
        self.assertEqual(parse_date('05.03.2026'), date(2026, 3, 5))
        self.assertEqual(parse_date('5.3.2026'), date(2026, 3, 5))
        self.assertEqual(format_date(parse_date('5.3.2026')), '05.03.2026')

    def test_invalid_dates(self):
        for bad in ('2026-03-05', '32.01.2026', '29.02.2026', '', 'yesterday'):
            with self.assertRaises(InvalidDateError):
                parse_date(bad)

    def test_parse_date_from_text(self):
        self.assertEqual(parse_date_from_text('27.01.26, Tuesday'), '27.01.2026')
        self.assertEqual(parse_date_from_text('report for 27.01.2026'), '27.01.2026')
        self.assertIsNone(parse_date_from_text('no date here'))

    def test_window_is_one_local_day(self):
        window = DateWindow.for_day(parse_date('05.03.2026'))
        self.assertEqual(window.start.replace(tzinfo=None), datetime(2026, 3, 5))
        self.assertEqual(window.end.replace(tzinfo=None), datetime(2026, 3, 6))
        self.assertEqual(window.since, window.start.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.000Z'))

    def test_window_rendering(self):
        plus_one = timezone(timedelta(hours=1))
        window = DateWindow(datetime(2026, 3, 5, tzinfo=plus_one), datetime(2026, 3, 6, tzinfo=plus_one))
        self.assertEqual(window.since, '2026-03-04T23:00:00.000Z')
        self.assertEqual(window.until, '2026-03-05T23:00:00.000Z')


if __name__ == '__main__':
    unittest.main()
