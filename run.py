from __future__ import annotations
import os
from bookhub import create_app

def main() -> None:
    flask_app = create_app()
    debug_enabled = os.environ.get("FLASK_DEBUG", "0") in {"1", "true", "True"}

    if debug_enabled:
        flask_app.logger.info("Mounted routes:")
        for rule in sorted(flask_app.url_map.iter_rules(), key=lambda r: r.rule):
            flask_app.logger.info("  %-45s %s", rule.rule, ",".join(sorted(rule.methods - {"HEAD", "OPTIONS"})))

    flask_app.run(
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", 5000)),
        debug=debug_enabled,
    )

if __name__ == "__main__":
    main()
