"""
Integration tests for the teammate binary probe.
"""

import pytest

from teamctl.core.errors import CapabilityError
from teamctl.execution.capability_probe import verify_teammate_support


@pytest.mark.integration
class TestVerifyTeammateSupport:

    def test_supported_binary(self, fake_claude):
        assert verify_teammate_support(fake_claude) == "2.1.0 (fake teammate)"

    def test_missing_team_flags(self, old_claude):
        with pytest.raises(CapabilityError) as exc_info:
            verify_teammate_support(old_claude)
        assert "does not appear to support" in str(exc_info.value)
        assert "--team-name/--teammate-mode" in str(exc_info.value)

    def test_missing_binary(self, tmp_path):
        with pytest.raises(CapabilityError) as exc_info:
            verify_teammate_support(str(tmp_path / "no-such-claude"))
        assert str(exc_info.value).startswith("Failed to execute")

    def test_failing_version(self, make_script):
        binary = make_script("broken", "#!/bin/sh\necho 'boom' >&2\nexit 3\n")
        with pytest.raises(CapabilityError) as exc_info:
            verify_teammate_support(binary)
        assert "--version failed (status=3): boom" in str(exc_info.value)

    def test_flags_may_appear_on_stderr(self, make_script):
        binary = make_script("stderr-help", (
            "#!/bin/sh\n"
            "if [ \"$1\" = \"--version\" ]; then echo 3.0; exit 0; fi\n"
            "echo '--team-name --teammate-mode' >&2\n"
        ))
        assert verify_teammate_support(binary) == "3.0"
