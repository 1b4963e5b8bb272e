"""Tests for output path mapping and single-file compilation."""

import queue
import threading
from pathlib import Path

import pytest

from assetpipe.compiler import CompileTask, compile_asset, output_path_for


class TestOutputPathFor:
    """Output path is a pure function of the source path."""

    def test_less_maps_to_css(self):
        assert output_path_for('assets/css/a.less') == str(Path('public/css/a.css'))

    def test_coffee_maps_to_js(self):
        assert output_path_for('assets/js/b.coffee') == str(Path('public/js/b.js'))

    def test_absolute_path(self):
        assert output_path_for('/srv/app/assets/js/nested/c.coffee') == '/srv/app/public/js/nested/c.js'

    def test_only_first_assets_segment_replaced(self):
        assert output_path_for('/srv/assets/assets/css/a.less') == '/srv/public/assets/css/a.css'

    def test_segment_must_match_exactly(self):
        """Directory names merely containing 'assets' are left alone."""
        assert output_path_for('/srv/myassets/css/a.less') == '/srv/myassets/css/a.css'

    def test_only_trailing_extension_swapped(self):
        assert output_path_for('assets/css/theme.less.less') == str(Path('public/css/theme.less.css'))

    def test_custom_segments(self):
        assert output_path_for('src/js/app.coffee', 'src', 'build') == str(Path('build/js/app.js'))

    def test_deterministic(self):
        assert output_path_for('assets/js/b.coffee') == output_path_for('assets/js/b.coffee')

    def test_base_path_above_asset_root_not_rewritten(self):
        assert (
            output_path_for('/srv/assets/app/assets/js/a.coffee', asset_root='/srv/assets/app/assets')
            == '/srv/assets/app/public/js/a.js'
        )

    def test_asset_root_segment_itself_rewritten(self):
        mapped = output_path_for('/srv/app/assets/css/a.less', asset_root='/srv/app/assets')
        assert mapped == '/srv/app/public/css/a.css'

    def test_asset_root_without_segment_searches_below(self):
        assert (
            output_path_for('/srv/assets/app/src/assets/a.less', asset_root='/srv/assets/app/src')
            == '/srv/assets/app/src/public/a.css'
        )

    def test_unsupported_extension_rejected(self):
        with pytest.raises(ValueError):
            output_path_for('assets/js/app.js')


class TestCompileAsset:
    """compile_asset emits exactly one result whatever happens."""

    def _run(self, filepath, processor, **kwargs):
        results = queue.Queue()
        returned = compile_asset(CompileTask(filepath=str(filepath), results=results), processor, **kwargs)
        assert results.qsize() == 1
        result = results.get_nowait()
        assert result == returned
        return result

    def test_success_writes_output(self, base_dir, write_asset, make_processor):
        source = write_asset('assets/js/app.coffee', 'alert "hi"\n')

        result = self._run(source, make_processor('upper'))

        output = base_dir / 'public' / 'js' / 'app.js'
        assert result.ok
        assert result.error is None
        assert result.filepath == str(source)
        assert result.output_path == str(output)
        assert result.asset_type == 'coffee'
        assert output.read_bytes() == b'/* compiled */\nALERT "HI"\n'

    def test_result_carries_command(self, write_asset, make_processor):
        source = write_asset('assets/js/app.coffee', 'x = 1')
        processor = make_processor('upper')
        result = self._run(source, processor)
        assert result.cmd == processor.cmd

    def test_diagnostics_fail_and_leave_existing_output(self, base_dir, write_asset, make_processor):
        source = write_asset('assets/css/main.less', 'body {}')
        stale = write_asset('public/css/main.css', 'stale')

        result = self._run(source, make_processor('warn'))

        assert not result.ok
        assert result.error == 'warning: something is deprecated\n'
        assert result.error_type == 'ProcessorDiagnosticsError'
        assert stale.read_text() == 'stale'

    def test_diagnostics_fail_without_creating_output(self, base_dir, write_asset, make_processor):
        source = write_asset('assets/css/main.less', 'body {}')
        result = self._run(source, make_processor('warn'))
        assert not result.ok
        assert not (base_dir / 'public' / 'css' / 'main.css').exists()

    def test_missing_source_is_terminal(self, base_dir, make_processor):
        source = base_dir / 'assets' / 'js' / 'gone.coffee'
        result = self._run(source, make_processor('upper'))
        assert not result.ok
        assert result.error_type == 'FileNotFoundError'
        assert not (base_dir / 'public' / 'js' / 'gone.js').exists()

    def test_uncreatable_output_directory_is_terminal(self, base_dir, write_asset, make_processor):
        source = write_asset('assets/js/app.coffee', 'x = 1')
        # a regular file where the output directory should be
        (base_dir / 'public').write_text('')

        result = self._run(source, make_processor('upper'))

        assert not result.ok
        assert result.error_type in ('FileExistsError', 'NotADirectoryError')

    def test_missing_compiler(self, write_asset):
        from assetpipe.models import Processor

        source = write_asset('assets/js/app.coffee', 'x = 1')
        result = self._run(source, Processor(cmd='/nonexistent/coffee', args=('-s', '-p')))
        assert not result.ok
        assert result.error_type == 'ProcessorLaunchError'
        assert result.cmd == '/nonexistent/coffee'

    def test_cancelled_before_start_does_not_run(self, base_dir, write_asset, make_processor):
        source = write_asset('assets/js/app.coffee', 'x = 1')
        cancel = threading.Event()
        cancel.set()

        result = self._run(source, make_processor('upper'), cancel_event=cancel)

        assert result.error_type == 'ProcessorCancelledError'
        assert not (base_dir / 'public').exists()

    def test_timeout_reported(self, write_asset, make_processor):
        source = write_asset('assets/js/app.coffee', 'x = 1')
        result = self._run(source, make_processor('hang'), timeout=0.5)
        assert result.error_type == 'ProcessorTimeoutError'

    def test_duration_recorded(self, write_asset, make_processor):
        source = write_asset('assets/js/app.coffee', 'x = 1')
        result = self._run(source, make_processor('upper'))
        assert result.duration > 0
