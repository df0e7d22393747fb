"""SongForge backend: generation jobs dispatched to Suno and Mureka.

The application is assembled in :mod:`.main`; feature packages expose
``*_api`` routers, ``*_service`` orchestration and ``*_models`` types.
"""
