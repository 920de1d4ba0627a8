"""Derived, read-only views over the collected tables."""

from __future__ import annotations

VIEW_NAMES: tuple[str, ...] = (
    "passed_tests",
    "failed_tests",
    "skipped_tests",
    "missing_coverage",
    "code_coverage",
    "test_code_coverage",
)

VIEW_DDL = """
CREATE VIEW passed_tests AS
SELECT package, test
FROM all_tests
WHERE "action" = 'pass';

CREATE VIEW failed_tests AS
SELECT package, test
FROM all_tests
WHERE "action" = 'fail';

CREATE VIEW skipped_tests AS
SELECT package, test
FROM all_tests
WHERE "action" = 'skip';

CREATE VIEW missing_coverage AS
SELECT *
FROM all_coverage
WHERE "count" = 0;

CREATE VIEW code_coverage AS
SELECT
    ac.package,
    ac.file,
    ac.line_number,
    ac.content,
    coalesce(max(cov."count"), 0) AS "count"
FROM all_code ac
LEFT JOIN all_coverage cov
  ON ac.package = cov.package
 AND ac.file = cov.file
 AND ac.line_number BETWEEN cov.start_line AND cov.end_line
WHERE ac.file NOT LIKE '%_test.go'
GROUP BY ac.package, ac.file, ac.line_number, ac.content;

CREATE VIEW test_code_coverage AS
SELECT
    tc.test_name,
    tc.function_name,
    ac.package,
    ac.file,
    ac.line_number,
    ac.content,
    tc."count"
FROM all_code ac
JOIN test_coverage tc
  ON ac.package = tc.package
 AND ac.file = tc.file
 AND ac.line_number BETWEEN tc.start_line AND tc.end_line;
"""

DROP_VIEWS_DDL = "\n".join(f"DROP VIEW IF EXISTS {name};" for name in reversed(VIEW_NAMES))
