# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/vehosts_runner


def test_import_vehosts_runner_package() -> None:
    """Tests that the main application package and its public names are importable."""
    try:
        import vehosts_runner
        from vehosts_runner import PreviewAssembler, ProjectService, SandboxedExecutor  # noqa: F401
    except ImportError as e:
        assert False, f"Failed to import from the 'vehosts_runner' package: {e}"

    assert vehosts_runner.__version__ == "0.1.0"
    assert set(vehosts_runner.__all__) >= {"RunnerConfig", "ExecutionLogger", "DependencyInstaller"}
