from __future__ import annotations

from unittest.mock import Mock, patch

from lead_import.services.progress import RowProgressTracker, is_tty_enabled


def test_is_tty_enabled_returns_stdout_isatty():
    """Test that is_tty_enabled returns sys.stdout.isatty()."""
    with patch('sys.stdout.isatty', return_value=True):
        assert is_tty_enabled() is True

    with patch('sys.stdout.isatty', return_value=False):
        assert is_tty_enabled() is False


class TestRowProgressTracker:
    def test_init_with_tty_enabled(self):
        with patch('lead_import.services.progress.is_tty_enabled', return_value=True), \
             patch('lead_import.services.progress.tqdm') as mock_tqdm:

            tracker = RowProgressTracker(12)

            assert tracker.enabled is True
            assert tracker.current_row == 0
            mock_tqdm.assert_called_once_with(
                total=12,
                desc="Importing leads",
                unit="row",
                disable=False,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )

    def test_init_with_tty_disabled(self):
        with patch('lead_import.services.progress.is_tty_enabled', return_value=False), \
             patch('lead_import.services.progress.tqdm') as mock_tqdm:
            tracker = RowProgressTracker(12, description="Leads")

            assert tracker.enabled is False
            assert tracker.pbar is None
            assert tracker.description == "Leads"
            mock_tqdm.assert_not_called()

    def test_advance_updates_bar(self):
        mock_pbar = Mock()
        with patch('lead_import.services.progress.is_tty_enabled', return_value=True), \
             patch('lead_import.services.progress.tqdm', return_value=mock_pbar):
            tracker = RowProgressTracker(3)
            tracker.advance()
            tracker.advance(failed=1)

        assert tracker.current_row == 2
        assert mock_pbar.update.call_count == 2
        mock_pbar.set_postfix.assert_called_once_with(failed=1)

    def test_advance_without_tty_only_counts(self):
        with patch('lead_import.services.progress.is_tty_enabled', return_value=False):
            tracker = RowProgressTracker(3)
            tracker.advance()
        assert tracker.current_row == 1

    def test_context_manager_closes_bar(self):
        mock_pbar = Mock()
        with patch('lead_import.services.progress.is_tty_enabled', return_value=True), \
             patch('lead_import.services.progress.tqdm', return_value=mock_pbar):
            with RowProgressTracker(1) as tracker:
                tracker.advance()

        mock_pbar.close.assert_called_once()
        assert tracker.pbar is None
