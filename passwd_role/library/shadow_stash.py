#!/usr/bin/python
# -*- coding: utf-8 -*-
"""Ansible module to stash, restore or rotate a user's /etc/shadow line."""

from pathlib import Path

from ansible.module_utils.basic import AnsibleModule

from pwstash.accounts import ensure_user
from pwstash.config import DEFAULT_BASE_DIR, DEFAULT_ROTATE_COMMAND, DEFAULT_SHADOW, StashConfig
from pwstash.errors import NoBackup, RecordNotFound, StashError
from pwstash.store import ShadowStash

DOCUMENTATION = r'''
module: shadow_stash
short_description: Back up, restore or rotate a user's shadow line
description:
    - Saves a user's /etc/shadow line to a private per-user backup file
    - Restores the saved line, taking a timestamped copy of /etc/shadow first
    - Runs an external password-rotation command after taking a backup
    - Never inserts a shadow line that is not already present
version_added: "1.0.0"
options:
    username:
        required: true
        type: str
        description: Account whose shadow line is handled
    state:
        type: str
        default: backed_up
        choices: [backed_up, restored, rotated]
        description: Which action to perform
    base_dir:
        type: path
        default: /root/pwstash
        description: Backup store root; per-user files go under user_hashes/
    shadow_path:
        type: path
        default: /etc/shadow
        description: Live credential file
    rotate_command:
        type: str
        default: changeseedboxpass
        description: Rotation command run (via sudo) when state is rotated
author:
    - System Admin Team
'''

EXAMPLES = r'''
- name: Keep a copy of the current hash before rotating
  shadow_stash:
    username: appuser
    state: rotated

- name: Put the previous hash back
  shadow_stash:
    username: appuser
    state: restored
'''

RETURN = r'''
backup_path:
    description: Per-user backup file
    type: str
    returned: always
snapshot_path:
    description: Copy of the credential file taken before a restore
    type: str
    returned: when state is restored and not in check mode
'''


def build_config(params):
    """Translate module parameters into a StashConfig."""
    return StashConfig(
        base_dir=Path(params['base_dir']),
        shadow_path=Path(params['shadow_path']),
        rotate_command=params['rotate_command'],
    )


def plan_change(stash, username, state):
    """Report whether ``state`` would modify anything, without writing.

    Args:
        stash: ShadowStash to inspect
        username: Target account
        state: Requested module state

    Returns:
        True if applying ``state`` would change a file
    """
    if state == 'rotated':
        return True

    if state == 'backed_up':
        ensure_user(username)
    live = stash.find_record(username)
    if state == 'backed_up':
        if live is None:
            raise RecordNotFound(f"No {stash.config.shadow_path} entry found for '{username}'.")
        try:
            return stash.load_backup(username) != live
        except NoBackup:
            return True

    saved = stash.load_backup(username)
    return live != saved


def apply_state(stash, username, state, check_mode=False):
    """Perform ``state`` for ``username`` and build the module result.

    Raises:
        StashError: Any failure from the accessor
    """
    result = {
        'changed': plan_change(stash, username, state),
        'backup_path': str(stash.backup_path(username)),
    }
    if check_mode:
        result['msg'] = f"{state} would be applied for {username}"
        return result

    if state == 'backed_up':
        if result['changed']:
            stash.backup(username)
            result['msg'] = f"Saved hash line for '{username}'"
        else:
            result['msg'] = f"Backup for '{username}' already matches the live hash"
    elif state == 'restored':
        if result['changed']:
            result['snapshot_path'] = str(stash.restore(username))
            result['msg'] = f"Restored password hash for '{username}'"
        else:
            result['msg'] = f"Password hash for '{username}' already matches the backup"
    else:
        # module stdout carries the JSON reply
        stash.rotate(username, capture_output=True)
        result['msg'] = f"Saved hash line for '{username}' and ran {stash.config.rotate_command}"
    return result


def run_module():
    module = AnsibleModule(
        argument_spec={
            'username': {'type': 'str', 'required': True},
            'state': {
                'type': 'str',
                'default': 'backed_up',
                'choices': ['backed_up', 'restored', 'rotated'],
            },
            'base_dir': {'type': 'path', 'default': str(DEFAULT_BASE_DIR)},
            'shadow_path': {'type': 'path', 'default': str(DEFAULT_SHADOW)},
            'rotate_command': {'type': 'str', 'default': DEFAULT_ROTATE_COMMAND},
        },
        supports_check_mode=True
    )

    username = module.params['username']
    stash = ShadowStash(build_config(module.params))

    try:
        result = apply_state(stash, username, module.params['state'], module.check_mode)
    except StashError as e:
        module.fail_json(msg=str(e), kind=e.kind)
        return

    module.exit_json(**result)


def main():
    """Entry point."""
    run_module()


if __name__ == '__main__':
    main()
