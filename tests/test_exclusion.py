"""Unit tests for exclusion patterns."""
import logging

import pytest

from dreamhost_deployer.utils import exclusion
from dreamhost_deployer.utils.exclusion import (
    GlobPatternError, glob_match, should_exclude, translate_glob
)


@pytest.fixture(autouse=True)
def fresh_pattern_cache():
    exclusion._compile.cache_clear()
    yield
    exclusion._compile.cache_clear()


class TestShouldExclude:
    """Name, prefix and glob matching."""

    def test_exact_file_name_matches_at_any_depth(self):
        assert should_exclude('config/.env', '.env', ['.env'])

    def test_prefix_excludes_directory_contents(self):
        assert should_exclude('node_modules/pkg/index.js', 'index.js', ['node_modules'])

    def test_glob_without_slash_matches_basename(self):
        assert should_exclude('logs/app.log', 'app.log', ['*.log'])
        assert not should_exclude('logs/app.txt', 'app.txt', ['*.log'])

    def test_double_star_matches_any_depth(self):
        assert should_exclude('assets/js/app.js.map', 'app.js.map', ['**/*.map'])
        assert should_exclude('app.js.map', 'app.js.map', ['**/*.map'])

    def test_blank_pattern_is_ignored(self):
        assert not should_exclude('index.html', 'index.html', [''])

    def test_no_patterns_keeps_everything(self):
        assert not should_exclude('index.html', 'index.html', [])


class TestMalformedPatterns:
    """A bad glob degrades to a substring test instead of raising."""

    def test_unterminated_class_falls_back_to_substring(self):
        patterns = ['[draft']

        assert should_exclude('posts/[draft/one.md', 'one.md', patterns)
        assert not should_exclude('posts/final.md', 'final.md', patterns)

    def test_bad_range_falls_back_to_substring(self):
        assert should_exclude('a/[z-a]/b.txt', 'b.txt', ['[z-a]'])
        assert not should_exclude('x.txt', 'x.txt', ['[z-a]'])

    def test_warning_logged_once_per_pattern(self, caplog):
        with caplog.at_level(logging.WARNING):
            should_exclude('one.txt', 'one.txt', ['[broken'])
            should_exclude('two.txt', 'two.txt', ['[broken'])

        warnings = [r for r in caplog.records if 'Invalid exclude pattern' in r.getMessage()]
        assert len(warnings) == 1

    def test_pattern_cache_is_bounded(self):
        for index in range(300):
            should_exclude('file.txt', 'file.txt', [f'*.ext{index}'])

        info = exclusion._compile.cache_info()
        assert info.maxsize == 256
        assert info.currsize == 256

    def test_glob_match_raises_for_malformed_pattern(self):
        with pytest.raises(GlobPatternError):
            glob_match('file.txt', '[oops')


class TestTranslateGlob:

    def test_single_star_stays_in_segment(self):
        assert glob_match('a.css', '*.css')
        assert not glob_match('css/a.css', 'css*.css')

    def test_question_mark_matches_one_character(self):
        assert glob_match('v1.txt', 'v?.txt')
        assert not glob_match('v10.txt', 'v?.txt')

    def test_negated_class(self):
        assert glob_match('b.txt', '[!a].txt')
        assert not glob_match('a.txt', '[!a].txt')

    def test_unterminated_class_raises(self):
        with pytest.raises(GlobPatternError):
            translate_glob('[abc')
