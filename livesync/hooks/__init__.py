"""Git hook entry points for livesync."""

from livesync.hooks.post_receive import RefUpdate, install_hook, parse_ref_updates, run_post_receive

__all__ = ["RefUpdate", "install_hook", "parse_ref_updates", "run_post_receive"]
