"""
server_cli
==========

:Author: Martin Wendt
:Copyright: Licensed under the MIT license, see LICENSE file in this package.

Standalone server that runs RestVFS.

These tasks are performed:

    - Set up the configuration from defaults, configuration file, and command line
      options.
    - Instantiate the RestVFSApp object (which is a WSGI application)
    - Start a WSGI server for this RestVFSApp object

Configuration is defined like this:

    1. Get the name of a configuration file from command line option
       ``--config=FILENAME`` (or short ``-cFILENAME``).
       If this option is omitted, we use ``restvfs.yaml`` in the current
       directory.
    2. Set reasonable default settings.
    3. If configuration file exists: read and use it to overwrite defaults.
    4. If command line options are passed, use them to override settings:

       ``--host`` option overrides ``host`` setting.

       ``--port`` option overrides ``port`` setting.

       ``--root=FOLDER`` option publishes FOLDER with a FilesystemVFSProvider.
"""

import argparse
import copy
import logging
import os
import platform
import sys
from pprint import pformat

import yaml
from json5 import load as json_load

from restvfs import __version__, util
from restvfs.default_conf import DEFAULT_CONFIG, DEFAULT_VERBOSE
from restvfs.rest_app import RestVFSApp

__docformat__ = "reStructuredText"

#: Try this config files if no --config=... option is specified
DEFAULT_CONFIG_FILES = ("restvfs.yaml", "restvfs.json")

#: Bucket id that is used by the standalone server, if none is configured
DEFAULT_BUCKET_ID = "default"

_logger = logging.getLogger("restvfs")


class FullExpandedPath(argparse.Action):
    """Expand user- and relative-paths"""

    def __call__(self, parser, namespace, values, option_string=None):
        new_val = os.path.abspath(os.path.expanduser(values))
        setattr(namespace, self.dest, new_val)


def _init_command_line_options(argv=None):
    """Parse command line options into a dictionary."""
    description = """\

Run a REST server that publishes a virtual file system.

Examples:

  Share filesystem folder '/temp' below '/fs/' (no config file used):
    restvfs --port=8080 --host=0.0.0.0 --root=/temp --mount=/fs/

  Share a folder for reading only and serve 'index.html' for containers:
    restvfs --root=/var/www --read-only --auto-index=index.html

  Run using a specific configuration file:
    restvfs --port=80 --host=0.0.0.0 --config=~/my_restvfs.yaml

  If no config file is specified, the application will look for a file named
  'restvfs.yaml' (or 'restvfs.json') in the current directory.
  """

    epilog = """\
Licensed under the MIT license.
"""

    parser = argparse.ArgumentParser(
        prog="restvfs",
        description=description,
        epilog=epilog,
        allow_abbrev=False,
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument(
        "-p",
        "--port",
        type=int,
        help="port to serve on (default: 8080)",
    )
    parser.add_argument(
        "-H",  # '-h' conflicts with --help
        "--host",
        help=(
            "host to serve from (default: localhost). 'localhost' is only "
            "accessible from the local computer. Use 0.0.0.0 to make your "
            "application public"
        ),
    )
    parser.add_argument(
        "-r",
        "--root",
        dest="root_path",
        action=FullExpandedPath,
        help="path to a file system folder to publish.",
    )
    parser.add_argument(
        "-m",
        "--mount",
        dest="mount_path",
        help="URL prefix of the published tree (default: '/').",
    )
    parser.add_argument(
        "--bucket",
        dest="bucket_id",
        help=f"bucket id passed to the provider (default: {DEFAULT_BUCKET_ID!r}).",
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="only handle GET, HEAD and PROPFIND requests.",
    )
    parser.add_argument(
        "--auto-index",
        metavar="NAME",
        help="file name that is served for GET requests on containers.",
    )
    parser.add_argument(
        "--server",
        choices=SUPPORTED_SERVERS.keys(),
        help="type of pre-installed WSGI server to use (default: cheroot).",
    )

    qv_group = parser.add_mutually_exclusive_group()
    qv_group.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=3,
        help="increment verbosity by one (default: %(default)s, range: 0..5)",
    )
    qv_group.add_argument(
        "-q", "--quiet", default=0, action="count", help="decrement verbosity by one"
    )

    qv_group = parser.add_mutually_exclusive_group()
    qv_group.add_argument(
        "-c",
        "--config",
        dest="config_file",
        action=FullExpandedPath,
        help=(
            f"configuration file (default: {DEFAULT_CONFIG_FILES} in current directory)"
        ),
    )
    qv_group.add_argument(
        "--no-config",
        action="store_true",
        help=f"do not try to load default {DEFAULT_CONFIG_FILES}",
    )

    parser.add_argument(
        "-V",
        "--version",
        action="store_true",
        help="print version info and exit (may be combined with --verbose)",
    )

    args = parser.parse_args(argv)

    args.verbose -= args.quiet
    del args.quiet

    if args.root_path and not os.path.isdir(args.root_path):
        msg = f"{args.root_path} is not a directory"
        parser.error(msg)

    if args.version:
        if args.verbose >= 4:
            version_info = "RestVFS/{} {}/{}({} bit) {}".format(
                __version__,
                platform.python_implementation(),
                util.PYTHON_VERSION,
                "64" if sys.maxsize > 2**32 else "32",
                platform.platform(aliased=True),
            )
            version_info += f"\nPython from: {sys.executable}"
        else:
            version_info = f"{__version__}"
        print(version_info)
        sys.exit()

    if args.no_config:
        pass
        # ... else ignore default config files
    elif args.config_file is None:
        # If --config was omitted, use default (if it exists)
        for filename in DEFAULT_CONFIG_FILES:
            defPath = os.path.abspath(filename)
            if os.path.exists(defPath):
                if args.verbose >= 3:
                    print(f"Using default configuration file: {defPath}")
                args.config_file = defPath
                break
    elif not os.path.isfile(args.config_file):
        parser.error(f"Could not find specified configuration file: {args.config_file}")

    # Convert args object to dictionary
    cmdLineOpts = args.__dict__.copy()
    if args.verbose >= 5:
        print("Command line args:")
        for k, v in cmdLineOpts.items():
            print(f"    {k:>12}: {v}")
    return cmdLineOpts, parser


def _read_config_file(config_file, _verbose):
    """Read configuration file options into a dictionary."""

    config_file = os.path.abspath(config_file)

    if not os.path.exists(config_file):
        raise RuntimeError(f"Couldn't open configuration file {config_file!r}.")

    if config_file.endswith(".json"):
        with open(config_file, encoding="utf-8-sig") as fp:
            conf = json_load(fp)

    elif config_file.endswith((".yaml", ".yml")):
        with open(config_file, encoding="utf-8-sig") as fp:
            conf = yaml.safe_load(fp)

    else:
        raise RuntimeError(
            f"Unsupported config file format (expected yaml or json): {config_file}"
        )

    if not isinstance(conf, dict):
        raise RuntimeError(f"Expected a mapping in configuration file {config_file!r}.")

    conf["_config_file"] = config_file
    conf["_config_root"] = os.path.dirname(config_file)
    return conf


def _init_config(argv=None):
    """Setup configuration dictionary from default, command line and configuration file."""
    cli_opts, parser = _init_command_line_options(argv)
    cli_verbose = cli_opts["verbose"]

    # Set config defaults
    config = copy.deepcopy(DEFAULT_CONFIG)
    config["_config_file"] = None
    config["_config_root"] = os.getcwd()

    # Configuration file overrides defaults
    config_file = cli_opts.get("config_file")
    if config_file:
        file_opts = _read_config_file(config_file, cli_verbose)
        util.deep_update(config, file_opts)
        if cli_verbose != DEFAULT_VERBOSE and "verbose" in file_opts:
            if cli_verbose >= 2:
                print(
                    "Config file defines 'verbose: {}' but is overridden by command line: {}.".format(
                        file_opts["verbose"], cli_verbose
                    )
                )
            config["verbose"] = cli_verbose
    else:
        if cli_verbose >= 2:
            print("Running without configuration file.")

    # Command line overrides file
    if cli_opts.get("port"):
        config["port"] = cli_opts.get("port")
    if cli_opts.get("host"):
        config["host"] = cli_opts.get("host")
    if cli_opts.get("server") is not None:
        config["server"] = cli_opts.get("server")
    if cli_opts.get("mount_path") is not None:
        config["mount_path"] = cli_opts.get("mount_path")
    if cli_opts.get("bucket_id") is not None:
        config["bucket_id"] = cli_opts.get("bucket_id")
    if cli_opts.get("read_only"):
        config["read_only"] = True
    if cli_opts.get("auto_index"):
        config["auto_index"] = cli_opts.get("auto_index")

    # Command line overrides file only if -v or -q where passed:
    if cli_opts.get("verbose") != DEFAULT_VERBOSE:
        config["verbose"] = cli_opts.get("verbose")

    if cli_opts.get("root_path"):
        config["provider"] = os.path.abspath(cli_opts.get("root_path"))

    # A standalone server has no router that could pass a bucket id
    if config.get("bucket_id") is None:
        config["bucket_id"] = DEFAULT_BUCKET_ID

    if config["verbose"] >= 5:
        print("Configuration({}):\n{}".format(cli_opts["config_file"], pformat(config)))

    if not config.get("provider"):
        parser.error("No VFS provider defined (use --root or a configuration file).")

    return cli_opts, config


def _run_cheroot(app, config, _server):
    """Run RestVFS using cheroot.server (https://cheroot.cherrypy.dev/)."""
    try:
        from cheroot import wsgi
    except ImportError:
        _logger.exception("Could not import Cheroot (https://cheroot.cherrypy.dev/).")
        _logger.error("Try `pip install cheroot`.")
        return False

    version = f"{util.public_restvfs_info} {wsgi.Server.version} Python/{util.PYTHON_VERSION}"
    url = f"http://{config['host']}:{config['port']}"

    _logger.info(f"Running {version}")
    _logger.info(f"Serving on {url} ...")

    server_args = {
        "bind_addr": (config["host"], config["port"]),
        "wsgi_app": app,
        "server_name": version,
    }
    # Override or add custom args
    custom_args = util.get_dict_value(config, "server_args", as_dict=True)
    server_args.update(custom_args)

    server = wsgi.Server(**server_args)
    try:
        server.start()
    except KeyboardInterrupt:
        _logger.warning("Caught Ctrl-C, shutting down...")
    finally:
        server.stop()
    return True


def _run_wsgiref(app, config, _server):
    """Run RestVFS using wsgiref.simple_server (https://docs.python.org/3/library/wsgiref.html)."""
    from wsgiref.simple_server import WSGIRequestHandler, make_server

    version = WSGIRequestHandler.server_version
    version = f"{util.public_restvfs_info} {version}"
    _logger.info(f"Running {version} ...")

    _logger.warning(
        "WARNING: This single threaded server (wsgiref) is not meant for production."
    )
    WSGIRequestHandler.server_version = version
    httpd = make_server(config["host"], config["port"], app)
    try:
        httpd.serve_forever()
    except KeyboardInterrupt:
        _logger.warning("Caught Ctrl-C, shutting down...")
    finally:
        httpd.server_close()
    return True


SUPPORTED_SERVERS = {
    "cheroot": _run_cheroot,
    "wsgiref": _run_wsgiref,
}


def run(argv=None):
    _cli_opts, config = _init_config(argv)

    # Standalone mode: always log to stdout
    config["logging"]["enable"] = True

    app = RestVFSApp(config)

    server = config["server"]
    handler = SUPPORTED_SERVERS.get(server)
    if not handler:
        raise RuntimeError(
            "Unsupported server type {!r} (expected {!r})".format(
                server, "', '".join(SUPPORTED_SERVERS.keys())
            )
        )

    if handler(app, config, server) is False:
        sys.exit(1)
    return


if __name__ == "__main__":
    run()
