from __future__ import annotations

import argparse
import logging
import sys

from posecam import __version__


def main(argv=None) -> int:
	parser = argparse.ArgumentParser(prog="posecam", description="Webcam pose sampling with slouch alerts.")
	parser.add_argument("--host", default="127.0.0.1", help="Bind address.")
	parser.add_argument("--port", type=int, default=8000, help="Bind port.")
	parser.add_argument("--config", default=None, help="Path to config.json (default: repo root).")
	parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
	parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
	args = parser.parse_args(argv)

	# Configure logging
	if args.debug:
		logging.basicConfig(level=logging.DEBUG, format="%(levelname)s:%(name)s:%(message)s")
	else:
		logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(name)s:%(message)s")

	if args.config:
		from posecam.config import set_config_path

		set_config_path(args.config)

	import uvicorn

	try:
		uvicorn.run("server:app", host=args.host, port=int(args.port), log_level="debug" if args.debug else "info")
	except KeyboardInterrupt:
		pass
	except Exception as e:
		logging.exception("Fatal error: %s", e)
		return 1
	return 0


if __name__ == "__main__":
	sys.exit(main())
