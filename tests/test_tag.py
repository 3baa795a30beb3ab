"""
Tests for tag formatting
"""

import logging

from pg_replicator.replication.tag import format_tag


class TestFormatTag:
    """${event} / ${primary_key} 치환"""

    def test_substitutes_known_placeholders(self):
        tag = format_tag("replicator.db.users.${event}.${primary_key}", "insert", "id")
        assert tag == "replicator.db.users.insert.id"

    def test_template_without_placeholders(self):
        assert format_tag("replicator.users", "delete", "id") == "replicator.users"

    def test_repeated_placeholder(self):
        assert format_tag("${event}.${event}", "update", "id") == "update.update"

    def test_unknown_placeholder_left_as_is(self, caplog):
        with caplog.at_level(logging.WARNING):
            tag = format_tag("replicator.${table}.${event}", "update", "id")

        assert tag == "replicator.${table}.update"
        assert "${table}" in caplog.text

    def test_known_placeholders_do_not_warn(self, caplog):
        with caplog.at_level(logging.WARNING):
            format_tag("a.${event}.${primary_key}", "insert", "id")
        assert caplog.records == []
