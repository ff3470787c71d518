import os
import sys
import unittest
from unittest import mock

import main


class LaunchSyncAgentTest(unittest.TestCase):
    def test_disabled_by_default(self):
        with mock.patch.dict(os.environ, {'SHOP_SYNC_AGENT_AUTO_START': '0'}), \
                mock.patch('main.subprocess.Popen') as popen:
            self.assertIsNone(main.launch_sync_agent(5000))
        popen.assert_not_called()

    def test_spawns_agent_pointed_at_server(self):
        env = {'SHOP_SYNC_AGENT_AUTO_START': '1', 'WERKZEUG_RUN_MAIN': ''}
        with mock.patch.dict(os.environ, env), mock.patch('main.subprocess.Popen') as popen:
            os.environ.pop('SHOP_SERVER_URL', None)
            proc = main.launch_sync_agent(5123)
        self.assertIs(proc, popen.return_value)
        args, kwargs = popen.call_args
        self.assertEqual(args[0], [sys.executable, main.AGENT_SCRIPT])
        self.assertEqual(kwargs['env']['SHOP_SERVER_URL'], 'http://127.0.0.1:5123')

    def test_reloader_child_does_not_spawn(self):
        env = {'SHOP_SYNC_AGENT_AUTO_START': '1', 'WERKZEUG_RUN_MAIN': 'true'}
        with mock.patch.dict(os.environ, env), mock.patch('main.subprocess.Popen') as popen:
            self.assertIsNone(main.launch_sync_agent(5000))
        popen.assert_not_called()


if __name__ == '__main__':
    unittest.main()
