from flowhut.main import run

run()
