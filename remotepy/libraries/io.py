"""Remote file handles, kept open between calls.

`open` returns a handle number used by the other functions.
"""
from remotepy import Library


library = Library("io")

library.func("open", '''
    handles = state.setdefault("io.handles", {})
    mode = args[1] if len(args) > 1 else "r"
    f = open(args[0], mode, encoding="utf-8")
    handle = str(f.fileno())
    handles[handle] = f
    return handle
''')

library.func("read", '''
    f = state["io.handles"][args[0]]
    if len(args) > 1:
        return f.read(int(args[1]))
    return f.read()
''')

library.func("write", '''
    f = state["io.handles"][args[0]]
    f.write(args[1])
    f.flush()
''')

library.func("seek", '''
    f = state["io.handles"][args[0]]
    return str(f.seek(int(args[1])))
''')

library.func("close", '''
    state["io.handles"].pop(args[0]).close()
''')
