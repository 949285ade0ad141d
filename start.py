import os

from frontdesk.app import create_app

if __name__ == '__main__':
    app = create_app()

    # debug=False and use_reloader=False so the shared visit projection lives in one process
    app.run(
        debug=False,
        host='0.0.0.0',
        port=int(os.environ.get('PORT', 8080)),
        use_reloader=False,
        threaded=True
    )
