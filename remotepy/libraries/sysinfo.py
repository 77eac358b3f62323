"""Information about the remote host and interpreter.
"""
from remotepy import Library


library = Library("sysinfo")

library.func("hostname", '''
    import socket
    return socket.gethostname()
''')

library.func("uname", '''
    import os
    return list(os.uname())
''')

library.func("loadavg", '''
    import os
    return [str(v) for v in os.getloadavg()]
''')

library.func("uptime", '''
    with open("/proc/uptime") as f:
        return f.read().split()[0]
''')

library.func("pid", '''
    import os
    return str(os.getpid())
''')

library.func("getcwd", '''
    import os
    return os.getcwd()
''')
